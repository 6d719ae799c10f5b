"""
Configuration utilities for bulwark.
Builds circuit breaker options from dictionaries, files and the environment.
"""

import json
import os
import re
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict

import yaml

from ..circuit.breaker import CircuitBreakerOptions
from ..errors import ConfigurationError

DURATION_FIELDS = ('operation_timeout', 'open_to_probe_delay')

INT_FIELDS = (
    'failure_count_threshold',
    'minimum_sample_size',
    'metrics_window_size',
    'latency_window_size',
    'evaluation_window_size',
    'half_open_max_probes',
)

FLOAT_FIELDS = ('failure_rate_threshold',)

BOOL_FIELDS = ('cancel_on_timeout',)

# Short and camelCase spellings accepted in configuration files
KEY_ALIASES = {
    'failurecountthreshold': 'failure_count_threshold',
    'failurethreshold': 'failure_count_threshold',
    'failureratethreshold': 'failure_rate_threshold',
    'operationtimeout': 'operation_timeout',
    'timeout': 'operation_timeout',
    'opentoprobedelay': 'open_to_probe_delay',
    'resettimeout': 'open_to_probe_delay',
    'minimumsamplesize': 'minimum_sample_size',
    'minimumthroughput': 'minimum_sample_size',
}

_UNIT_FACTORS = {
    'ms': timedelta(milliseconds=1),
    's': timedelta(seconds=1),
    'm': timedelta(minutes=1),
    'h': timedelta(hours=1),
    'd': timedelta(days=1),
}


def parse_duration_string(duration_str: str) -> timedelta:
    """
    Parse duration string like '250ms', '30s', '5m', '2h', '1d' into timedelta.
    """
    if not isinstance(duration_str, str):
        raise ValueError("Duration must be a string")

    duration_str = duration_str.strip().lower()

    # Pattern to match number followed by unit
    match = re.match(r'^(\d+(?:\.\d+)?)\s*(ms|s|m|h|d)$', duration_str)

    if not match:
        raise ValueError(f"Invalid duration format: {duration_str}")

    value, unit = match.groups()
    return _UNIT_FACTORS[unit] * float(value)


ENV_FIELDS = DURATION_FIELDS + INT_FIELDS + FLOAT_FIELDS + BOOL_FIELDS


def read_env_options(prefix: str = "BULWARK_") -> Dict[str, str]:
    """
    Collect raw option values from ``<prefix><FIELD>`` environment variables.

    Only options that can be written as text are read; callbacks and the
    breaker name are never taken from the environment.
    """
    values = {}
    for field_name in ENV_FIELDS:
        value = os.environ.get(f"{prefix}{field_name.upper()}")
        if value is not None and value.strip():
            values[field_name] = value.strip()
    return values


def load_config_file(file_path: str) -> Dict[str, Any]:
    """Load configuration from a file (JSON or YAML)."""
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    file_ext = path.suffix.lower()

    with open(path, 'r', encoding='utf-8') as f:
        if file_ext == '.json':
            data = json.load(f)
        elif file_ext in ('.yaml', '.yml'):
            data = yaml.safe_load(f)
        else:
            raise ValueError(f"Unsupported configuration file format: {file_ext}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {file_path} must contain a mapping")
    return data


def normalize_config_key(key: str) -> str:
    """Normalize configuration key to the options field name."""
    normalized = key.strip().replace('-', '_')
    if normalized.isupper():
        normalized = normalized.lower()

    alias = KEY_ALIASES.get(normalized.replace('_', '').lower())
    if alias:
        return alias

    # camelCase -> snake_case
    return re.sub(r'(?<!^)(?=[A-Z])', '_', normalized).lower()


def _coerce_duration(field_name: str, value: Any) -> timedelta:
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ConfigurationError(f"{field_name} must be a duration, got {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    if isinstance(value, str):
        try:
            return parse_duration_string(value)
        except ValueError:
            try:
                return timedelta(seconds=float(value))
            except ValueError:
                raise ConfigurationError(f"{field_name} has invalid duration {value!r}")
    raise ConfigurationError(f"{field_name} must be a duration, got {value!r}")


def _coerce_value(field_name: str, value: Any) -> Any:
    if field_name in DURATION_FIELDS:
        return _coerce_duration(field_name, value)

    if not isinstance(value, str):
        return value

    try:
        if field_name in INT_FIELDS:
            return int(value)
        if field_name in FLOAT_FIELDS:
            return float(value)
    except ValueError:
        raise ConfigurationError(f"{field_name} has invalid value {value!r}")

    if field_name in BOOL_FIELDS:
        return value.lower() in ('true', '1', 'yes', 'on')

    return value


def options_from_dict(data: Dict[str, Any], **overrides: Any) -> CircuitBreakerOptions:
    """
    Build validated circuit breaker options from a configuration mapping.

    Durations may be timedelta objects, numbers of seconds or strings such as
    '500ms'. Keyword overrides are applied after the mapping.
    """
    known = CircuitBreakerOptions.__dataclass_fields__
    values: Dict[str, Any] = {}
    unknown = []

    for key, value in {**data, **overrides}.items():
        field_name = normalize_config_key(key)
        if field_name not in known:
            unknown.append(key)
            continue
        values[field_name] = _coerce_value(field_name, value)

    if unknown:
        raise ConfigurationError(f"Unknown circuit breaker options: {', '.join(sorted(unknown))}")

    return CircuitBreakerOptions(**values)


def options_from_env(name: str = "default", prefix: str = "BULWARK_") -> CircuitBreakerOptions:
    """
    Build circuit breaker options from environment variables.

    Example: BULWARK_FAILURE_COUNT_THRESHOLD=3, BULWARK_OPERATION_TIMEOUT=500ms
    """
    return options_from_dict(read_env_options(prefix), name=name)
