"""
Exception hierarchy for paramstate.

Soft failures (an invalid UI value, a second hook registration, attaching a
namespace twice) are reported through return values and log warnings. The
exceptions below are raised where a caller must react:

- ValidationError: value rejected by a parameter's validator
- CommitError: executor or backend round trip failed
- BatchRejectedError: pending changes were rejected before execution
- ParameterNotFoundError: unknown parameter id in a batch update
- HistoryError: invalid history index or unknown timestamp
- ConfigurationError: invalid configuration values
"""
from typing import Any, Dict, Optional

__all__ = [
    'ParamStateError',
    'ValidationError',
    'CommitError',
    'BatchRejectedError',
    'ParameterNotFoundError',
    'HistoryError',
    'ConfigurationError',
]


class ParamStateError(Exception):
    """Base exception for all paramstate errors.

    Carries the namespace and parameter the error relates to, so that
    notifiers and structured logs can attribute it.
    """

    def __init__(
        self,
        message: str,
        *,
        namespace: Optional[str] = None,
        parameter_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.namespace = namespace
        self.parameter_id = parameter_id
        self.details = details or {}

        prefix = ''
        if namespace is not None or parameter_id is not None:
            prefix = f"[{namespace or '?'}.{parameter_id or '*'}] "
        super().__init__(f"{prefix}{message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'namespace': self.namespace,
            'parameter_id': self.parameter_id,
            'details': self.details,
        }


class ValidationError(ParamStateError):
    """A value was rejected by a parameter's validator."""


class CommitError(ParamStateError):
    """Executing a change batch failed.

    The original exception is available as ``__cause__``.
    """


class BatchRejectedError(ParamStateError):
    """Pending changes were rejected and never reached the executor."""


class ParameterNotFoundError(ParamStateError):
    """A parameter id does not exist in the namespace."""


class HistoryError(ParamStateError):
    """History navigation target does not exist."""


class ConfigurationError(ParamStateError):
    """Invalid configuration value."""
