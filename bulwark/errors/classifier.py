"""
Error classification for deciding whether a failure should count against a
protected dependency.

The classifier is a caller-side policy. A breaker only needs a boolean, so
ErrorClassifier.triggers_open can be handed to CircuitBreakerOptions as the
failure_predicate.
"""

import asyncio
import errno
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import ErrorSeverity


class ErrorType(Enum):
    """Categories an exception can be classified into."""

    TIMEOUT = "timeout"
    NETWORK = "network"
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    RATE_LIMIT = "rate_limit"
    SERVICE_UNAVAILABLE = "service_unavailable"
    INTERNAL_SERVER = "internal_server"
    DATABASE = "database"
    EXTERNAL_SERVICE = "external_service"


@dataclass(frozen=True)
class ErrorClassification:
    """Classification result with handling instructions."""
    category: ErrorType
    triggers_open: bool
    retryable: bool
    severity: ErrorSeverity


ClassificationRule = Tuple[Callable[[BaseException], bool], Dict[str, Any]]


class ErrorClassifier:
    """Classify exceptions raised by protected operations."""

    HTTP_STATUS_MAPPINGS: Dict[int, ErrorType] = {
        400: ErrorType.VALIDATION,
        401: ErrorType.AUTHENTICATION,
        403: ErrorType.AUTHORIZATION,
        404: ErrorType.VALIDATION,
        408: ErrorType.TIMEOUT,
        429: ErrorType.RATE_LIMIT,
        500: ErrorType.INTERNAL_SERVER,
        502: ErrorType.SERVICE_UNAVAILABLE,
        503: ErrorType.SERVICE_UNAVAILABLE,
        504: ErrorType.TIMEOUT,
    }

    # Checked in order, so subclasses must precede their bases
    EXCEPTION_TYPE_MAPPINGS: List[Tuple[type, ErrorType]] = [
        (asyncio.TimeoutError, ErrorType.TIMEOUT),
        (TimeoutError, ErrorType.TIMEOUT),
        (ConnectionError, ErrorType.NETWORK),
        (PermissionError, ErrorType.AUTHORIZATION),
    ]

    # Generic input errors, consulted only when no message pattern matches
    FALLBACK_TYPE_MAPPINGS: List[Tuple[type, ErrorType]] = [
        (ValueError, ErrorType.VALIDATION),
        (KeyError, ErrorType.VALIDATION),
    ]

    EXCEPTION_NAME_MAPPINGS: Dict[str, ErrorType] = {
        "NetworkError": ErrorType.NETWORK,
        "ConnectError": ErrorType.NETWORK,
        "AuthenticationError": ErrorType.AUTHENTICATION,
        "AuthorizationError": ErrorType.AUTHORIZATION,
        "ValidationError": ErrorType.VALIDATION,
        "NotFoundError": ErrorType.VALIDATION,
        "RateLimitError": ErrorType.RATE_LIMIT,
        "ServiceUnavailableError": ErrorType.SERVICE_UNAVAILABLE,
        "DatabaseError": ErrorType.DATABASE,
        "OperationalError": ErrorType.DATABASE,
    }

    ERRNO_MAPPINGS: Dict[int, ErrorType] = {
        errno.ECONNREFUSED: ErrorType.NETWORK,
        errno.ECONNRESET: ErrorType.NETWORK,
        errno.ETIMEDOUT: ErrorType.TIMEOUT,
        errno.EHOSTUNREACH: ErrorType.NETWORK,
        errno.ENETUNREACH: ErrorType.NETWORK,
    }

    MESSAGE_PATTERNS: List[Tuple[re.Pattern, ErrorType]] = [
        (re.compile(r"database", re.IGNORECASE), ErrorType.DATABASE),
        (re.compile(r"timeout|timed out", re.IGNORECASE), ErrorType.TIMEOUT),
        (re.compile(r"network", re.IGNORECASE), ErrorType.NETWORK),
        (re.compile(r"connection", re.IGNORECASE), ErrorType.NETWORK),
        (re.compile(r"rate limit", re.IGNORECASE), ErrorType.RATE_LIMIT),
        (re.compile(r"unauthorized", re.IGNORECASE), ErrorType.AUTHENTICATION),
        (re.compile(r"forbidden", re.IGNORECASE), ErrorType.AUTHORIZATION),
        (re.compile(r"not found", re.IGNORECASE), ErrorType.VALIDATION),
        (re.compile(r"validation", re.IGNORECASE), ErrorType.VALIDATION),
        (re.compile(r"service unavailable", re.IGNORECASE), ErrorType.SERVICE_UNAVAILABLE),
    ]

    HIGH_VOLUME_RATE_LIMIT_INDICATORS = (
        "rate limit exceeded",
        "too many requests",
        "quota exceeded",
        "exceeded quota",
        "throttled",
        "request limit",
        "api limit",
    )

    PERMANENT_ERROR_KEYWORDS = (
        "not found",
        "does not exist",
        "invalid input",
        "malformed",
        "syntax error",
        "constraint violation",
    )

    # Retry-After above this many seconds marks a severe rate limit
    RATE_LIMIT_RETRY_AFTER_THRESHOLD = 60

    @classmethod
    def classify(cls, error: BaseException) -> ErrorClassification:
        """Classify an error and determine how it should be handled."""
        error_type = cls.determine_error_type(error)

        return ErrorClassification(
            category=error_type,
            triggers_open=cls._triggers_open(error_type, error),
            retryable=cls._is_retryable(error_type, error),
            severity=cls._determine_severity(error_type),
        )

    @classmethod
    def triggers_open(cls, error: BaseException) -> bool:
        """Failure predicate: should this error count against the dependency."""
        return cls.classify(error).triggers_open

    @classmethod
    def determine_error_type(cls, error: BaseException) -> ErrorType:
        """
        Determine the error type from the error's attributes.

        Checked in order: HTTP status, class name, errno, specific exception
        types, message patterns, then generic ValueError/KeyError.
        """
        status = cls._get_status(error)
        if status is not None and status in cls.HTTP_STATUS_MAPPINGS:
            return cls.HTTP_STATUS_MAPPINGS[status]

        name = type(error).__name__
        if name in cls.EXCEPTION_NAME_MAPPINGS:
            return cls.EXCEPTION_NAME_MAPPINGS[name]

        code = getattr(error, "errno", None)
        if isinstance(code, int) and code in cls.ERRNO_MAPPINGS:
            return cls.ERRNO_MAPPINGS[code]

        for exc_type, error_type in cls.EXCEPTION_TYPE_MAPPINGS:
            if isinstance(error, exc_type):
                return error_type

        message = str(error)
        for pattern, error_type in cls.MESSAGE_PATTERNS:
            if pattern.search(message):
                return error_type

        for exc_type, error_type in cls.FALLBACK_TYPE_MAPPINGS:
            if isinstance(error, exc_type):
                return error_type

        return ErrorType.EXTERNAL_SERVICE

    @classmethod
    def create_custom_classifier(
        cls,
        rules: List[ClassificationRule]
    ) -> Callable[[BaseException], ErrorClassification]:
        """
        Create a classifier that overlays caller-defined rules.

        Args:
            rules: (condition, overrides) pairs. The first rule whose condition
                matches has its overrides applied on top of the default
                classification. Override keys are ErrorClassification fields.

        Returns:
            Function mapping an exception to its classification
        """
        def classify(error: BaseException) -> ErrorClassification:
            base = cls.classify(error)
            for condition, overrides in rules:
                if condition(error):
                    return replace(base, **overrides)
            return base

        return classify

    @staticmethod
    def _get_status(error: BaseException) -> Optional[int]:
        for attr in ("status", "status_code"):
            value = getattr(error, attr, None)
            if isinstance(value, int):
                return value

        response = getattr(error, "response", None)
        value = getattr(response, "status_code", None) if response is not None else None
        return value if isinstance(value, int) else None

    @classmethod
    def _triggers_open(cls, error_type: ErrorType, error: BaseException) -> bool:
        if error_type in (ErrorType.AUTHENTICATION, ErrorType.AUTHORIZATION, ErrorType.VALIDATION):
            return False
        if error_type == ErrorType.RATE_LIMIT:
            return cls._is_high_volume_rate_limit(error)
        return True

    @classmethod
    def _is_retryable(cls, error_type: ErrorType, error: BaseException) -> bool:
        if error_type in (ErrorType.AUTHENTICATION, ErrorType.AUTHORIZATION, ErrorType.VALIDATION):
            return False
        if error_type in (ErrorType.DATABASE, ErrorType.EXTERNAL_SERVICE):
            return not cls._is_permanent_error(error)
        return True

    @staticmethod
    def _determine_severity(error_type: ErrorType) -> ErrorSeverity:
        if error_type in (ErrorType.VALIDATION, ErrorType.AUTHENTICATION, ErrorType.AUTHORIZATION):
            return ErrorSeverity.LOW
        if error_type == ErrorType.RATE_LIMIT:
            return ErrorSeverity.MEDIUM
        if error_type in (ErrorType.TIMEOUT, ErrorType.NETWORK, ErrorType.EXTERNAL_SERVICE):
            return ErrorSeverity.HIGH
        return ErrorSeverity.CRITICAL

    @classmethod
    def _is_high_volume_rate_limit(cls, error: BaseException) -> bool:
        retry_after = getattr(error, "retry_after", None)
        if retry_after is not None:
            try:
                return int(retry_after) > cls.RATE_LIMIT_RETRY_AFTER_THRESHOLD
            except (TypeError, ValueError):
                return False

        message = str(error).lower()
        return any(indicator in message for indicator in cls.HIGH_VOLUME_RATE_LIMIT_INDICATORS)

    @classmethod
    def _is_permanent_error(cls, error: BaseException) -> bool:
        message = str(error).lower()
        return any(keyword in message for keyword in cls.PERMANENT_ERROR_KEYWORDS)
