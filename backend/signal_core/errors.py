"""Error hierarchy shared by the analysis pipeline."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorCode(int, Enum):
    """Numeric error codes grouped by category."""

    # Data (1xxx)
    SOURCE_UNAVAILABLE = 1001
    PARSE_ERROR = 1002
    TIMEOUT = 1003
    RATE_LIMITED = 1004

    # Analysis (2xxx)
    ANALYSIS_FAILED = 2001
    INSUFFICIENT_DATA = 2002
    INVALID_SYMBOL = 2003

    # Validation (3xxx)
    VALIDATION_FAILED = 3001
    CRITICAL_LAYER_FAILED = 3002

    # System (4xxx)
    INTERNAL_ERROR = 4001
    CONFIG_MISSING = 4002
    RATE_LIMIT_EXCEEDED = 4003

    # Resilience (5xxx)
    CIRCUIT_OPEN = 5001
    CIRCUIT_HALF_OPEN = 5002


class SignalEngineError(Exception):
    """Base error carrying a code, structured context and a UTC timestamp."""

    default_code = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        code: ErrorCode | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code.name,
            "code_value": self.code.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


class DataFetchError(SignalEngineError):
    """Market data could not be fetched or parsed."""

    default_code = ErrorCode.SOURCE_UNAVAILABLE

    def __init__(
        self,
        message: str,
        source: str = "",
        code: ErrorCode | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, code, {"source": source, **(context or {})})
        self.source = source


class AnalysisError(SignalEngineError):
    default_code = ErrorCode.ANALYSIS_FAILED

    def __init__(
        self,
        message: str,
        analyzer: str = "",
        code: ErrorCode | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, code, {"analyzer": analyzer, **(context or {})})
        self.analyzer = analyzer


class ValidationError(SignalEngineError):
    default_code = ErrorCode.VALIDATION_FAILED

    def __init__(
        self,
        message: str,
        layer: str = "",
        code: ErrorCode | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, code, {"layer": layer, **(context or {})})
        self.layer = layer


class ConfigurationError(SignalEngineError):
    """Invalid configuration. Fatal at construction time."""

    default_code = ErrorCode.CONFIG_MISSING

    def __init__(
        self,
        message: str,
        setting: str = "",
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, None, {"setting": setting, **(context or {})})
        self.setting = setting


class CircuitOpenError(SignalEngineError):
    """Call rejected because a circuit breaker is not admitting requests."""

    default_code = ErrorCode.CIRCUIT_OPEN

    def __init__(self, name: str, half_open: bool = False, retry_after: float = 0.0):
        code = ErrorCode.CIRCUIT_HALF_OPEN if half_open else ErrorCode.CIRCUIT_OPEN
        state = "HALF_OPEN" if half_open else "OPEN"
        super().__init__(
            f"Circuit breaker '{name}' is {state}",
            code,
            {"circuit": name, "retry_after": round(retry_after, 3)},
        )
        self.name = name


class OperationTimeoutError(SignalEngineError):
    default_code = ErrorCode.TIMEOUT

    def __init__(self, operation: str, timeout: float):
        super().__init__(
            f"Operation '{operation}' timed out after {timeout}s",
            context={"operation": operation, "timeout": timeout},
        )
        self.timeout = timeout


def format_error_response(exc: BaseException) -> dict[str, Any]:
    """Render an exception as a failure payload for callers outside the core.

    Engine errors expose their code and context. Anything else is reported
    as an internal error without leaking its message.
    """
    if isinstance(exc, SignalEngineError):
        return {
            "success": False,
            "error": {
                "message": exc.message,
                "code": exc.code.name,
                "context": exc.context,
            },
        }
    return {
        "success": False,
        "error": {
            "message": "An unexpected error occurred",
            "code": ErrorCode.INTERNAL_ERROR.name,
        },
    }
