"""
Configuration for paramstate.

A ParamStateConfig is passed explicitly to NamespaceDirectory and
ParameterControl. Callers that do not pass one get the process default,
which can be replaced once at application startup via set_default_config().
"""
import logging
import os
from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

from paramstate.errors import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = 'PARAMSTATE_'


@dataclass(frozen=True)
class ParamStateConfig:
    """Tunables of the commit engine.

    Attributes:
        debounce_ms: Debounce window of a control in immediate mode.
        accept_reject_debounce_ms: Debounce window of a control in
            accept/reject mode (edits are only collected, so no delay).
        session_priority: Priority of change batches of backend sessions.
        generic_priority: Priority of change batches of generic parameter sets.
        max_history_size: Upper bound of history entries, None for unbounded.
    """
    debounce_ms: int = 1000
    accept_reject_debounce_ms: int = 0
    session_priority: int = 0
    generic_priority: int = -1
    max_history_size: Optional[int] = None

    def __post_init__(self) -> None:
        if self.debounce_ms < 0:
            raise ConfigurationError(f"debounce_ms must be >= 0, got {self.debounce_ms}")
        if self.accept_reject_debounce_ms < 0:
            raise ConfigurationError(
                f"accept_reject_debounce_ms must be >= 0, got {self.accept_reject_debounce_ms}"
            )
        if self.max_history_size is not None and self.max_history_size < 1:
            raise ConfigurationError(
                f"max_history_size must be >= 1 or None, got {self.max_history_size}"
            )

    def debounce_seconds(self, accept_reject_mode: bool) -> float:
        """Debounce window in seconds for the given mode."""
        ms = self.accept_reject_debounce_ms if accept_reject_mode else self.debounce_ms
        return ms / 1000.0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'ParamStateConfig':
        """Build a config from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")
        kwargs = {}
        for name in known & set(data):
            value = data[name]
            if name == 'max_history_size' and value in (None, '', 'none', 'None'):
                kwargs[name] = None
                continue
            try:
                kwargs[name] = int(value)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"{name} must be an integer, got {value!r}") from e
        return cls(**kwargs)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'ParamStateConfig':
        """Build a config from PARAMSTATE_* environment variables.

        Example: PARAMSTATE_DEBOUNCE_MS=250 sets debounce_ms.
        """
        environ = os.environ if environ is None else environ
        data = {
            key[len(ENV_PREFIX):].lower(): value
            for key, value in environ.items()
            if key.startswith(ENV_PREFIX)
        }
        return cls.from_mapping(data)


_default_config: ParamStateConfig = ParamStateConfig()


def set_default_config(config: ParamStateConfig) -> None:
    """Replace the process default config (app startup, tests)."""
    global _default_config
    _default_config = config
    logger.debug(f"Default config set: {config}")


def get_default_config() -> ParamStateConfig:
    """Get the process default config."""
    return _default_config
