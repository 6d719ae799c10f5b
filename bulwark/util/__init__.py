# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Package util provides configuration helpers for bulwark.

- Duration parsing ('250ms', '3s', '1m')
- Environment and file (JSON/YAML) configuration loading
- Conversion of configuration mappings into circuit breaker options
"""

from .config import (
    parse_duration_string,
    read_env_options,
    load_config_file,
    normalize_config_key,
    options_from_dict,
    options_from_env,
)

__all__ = [
    'parse_duration_string',
    'read_env_options',
    'load_config_file',
    'normalize_config_key',
    'options_from_dict',
    'options_from_env',
]
