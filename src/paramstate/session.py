"""
Collaborator interfaces consumed by paramstate.

The backend connection, the host page navigation and the user notification
layer are not part of this package. They are reached only through the
protocols below, which any object with matching attributes satisfies.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class RemoteParameter(Protocol):
    """A live parameter of a backend session.

    Besides the attributes below, definition metadata (display_name, choices,
    min, max, decimal_places, group, order, hidden, ...) is read if present.
    """
    id: str
    name: str
    type: str
    default_value: Any
    value: Any  # current value, written by SessionExecutor

    def validate(self, value: Any) -> bool:
        ...

    def stringify(self, value: Any) -> str:
        ...


@runtime_checkable
class RemoteExport(Protocol):
    """A live export of a backend session."""
    id: str
    name: str

    async def request(self, parameters: Dict[str, str]) -> Any:
        ...


@runtime_checkable
class Session(Protocol):
    """A live backend session owning parameters, exports and outputs."""
    id: str
    parameters: Mapping[str, RemoteParameter]
    exports: Mapping[str, RemoteExport]
    outputs: Mapping[str, Any]

    @property
    def parameter_values(self) -> Dict[str, Any]:
        ...

    async def customize(self) -> Any:
        ...

    async def request_exports(
        self,
        parameters: Dict[str, Any],
        exports: List[str],
        outputs: List[str],
    ) -> Mapping[str, Any]:
        ...


@runtime_checkable
class Navigator(Protocol):
    """Host page navigation (browser history or equivalent).

    Entries are opaque to the host; they come back through
    NamespaceDirectory.handle_navigation() when the user navigates.
    """

    def push_state(self, entry: Any) -> None:
        ...

    def replace_state(self, entry: Any) -> None:
        ...


@runtime_checkable
class Notifier(Protocol):
    """Side channel for errors that must reach the user."""

    def notify_error(self, namespace: Optional[str], error: BaseException) -> None:
        ...


class LoggingNotifier:
    """Default notifier: reports errors to the log only."""

    def notify_error(self, namespace: Optional[str], error: BaseException) -> None:
        logger.warning(f"Error while executing changes for namespace {namespace!r}: {error}")
