"""
Parameter and export cells.

A ParameterCell is the reactive unit of one parameter in one namespace:
its static definition, its current ParameterState and the actions that
change it. The state is an immutable (ui_value, exec_value, dirty) triple
that is replaced as a whole, so subscribers always observe a consistent
snapshot.

    cell.on_state_changed(lambda state: print(state.ui_value, state.dirty))
    if cell.set_ui_value('20'):
        await cell.execute(force_immediate=True)

Cells are created and dropped by NamespaceDirectory; callers should look
them up through the directory rather than caching them across attach/detach.
"""
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional

import httpx

from paramstate.change_batch import ChangeBatch
from paramstate.definitions import ExportDefinition, ParameterDefinition
from paramstate.errors import ParamStateError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParameterState:
    """Immutable state of a parameter cell.

    Attributes:
        ui_value: Value shown by the controls (possibly not yet committed).
        exec_value: Last committed value.
        dirty: ui_value differs from exec_value.
    """
    ui_value: Any
    exec_value: Any
    dirty: bool = False


class ParameterCell:
    """State and actions of one parameter of one namespace."""

    def __init__(
        self,
        namespace: str,
        definition: ParameterDefinition,
        get_changes: Callable[[], ChangeBatch],
        accept_reject_mode: bool = False,
        value: Any = None,
        is_valid: Optional[Callable[[Any, bool], bool]] = None,
        stringify: Optional[Callable[[Any], str]] = None,
    ):
        """
        Args:
            namespace: Namespace owning the cell.
            definition: Static definition of the parameter.
            get_changes: Returns the namespace's live change batch, creating
                one if needed.
            accept_reject_mode: Changes are collected until explicitly
                accepted or rejected.
            value: Initial value, defaults to the definition's default value.
            is_valid: Validator ``(value, raise_error) -> bool``.
            stringify: Value formatter, defaults to ``str``.
        """
        self.namespace = namespace
        self.definition = definition
        self.accept_reject_mode = accept_reject_mode
        self._get_changes = get_changes
        self._is_valid = is_valid
        self._stringify = stringify

        initial = definition.default_value if value is None else value
        self._state = ParameterState(ui_value=initial, exec_value=initial, dirty=False)
        self._on_state_changed_callbacks: List[Callable[[ParameterState], None]] = []

    def __repr__(self) -> str:
        return f"ParameterCell(namespace={self.namespace!r}, id={self.definition.id!r}, state={self._state!r})"

    @property
    def id(self) -> str:
        return self.definition.id

    @property
    def state(self) -> ParameterState:
        return self._state

    # === Subscription ===

    def on_state_changed(self, callback: Callable[[ParameterState], None]) -> None:
        """Subscribe to state changes. The callback receives the new state."""
        if callback not in self._on_state_changed_callbacks:
            self._on_state_changed_callbacks.append(callback)

    def off_state_changed(self, callback: Callable[[ParameterState], None]) -> None:
        """Unsubscribe from state changes."""
        if callback in self._on_state_changed_callbacks:
            self._on_state_changed_callbacks.remove(callback)

    def _set_state(self, state: ParameterState) -> None:
        if state == self._state:
            return
        self._state = state
        for callback in list(self._on_state_changed_callbacks):
            try:
                callback(state)
            except Exception as e:
                logger.warning(f"Error in state_changed callback: {e}")

    # === Validation ===

    def is_valid(self, value: Any, raise_error: bool = False) -> bool:
        """Check a value against the parameter's validator.

        Raises:
            ValidationError: If raise_error is set and the value is invalid.
        """
        if self._is_valid is None:
            return True
        return self._is_valid(value, raise_error)

    def stringify(self, value: Any) -> str:
        if self._stringify is None:
            return str(value)
        return self._stringify(value)

    def is_ui_value_different(self, value: Any) -> bool:
        """Compare the stringified forms of value and the current ui value."""
        return self.stringify(value) != self.stringify(self._state.ui_value)

    def _accepts(self, value: Any) -> bool:
        # Never raise across the set_* boundary
        try:
            return bool(self.is_valid(value, False))
        except Exception as e:
            logger.warning(f"Validator of {self.namespace}.{self.id} failed for {value!r}: {e}")
            return False

    # === Actions ===

    def set_ui_value(self, value: Any) -> bool:
        """Set the displayed value.

        Returns:
            False if the value is invalid (nothing changes).
        """
        if not self._accepts(value):
            logger.debug(f"Invalid value for {self.namespace}.{self.id}: {value!r}")
            return False
        state = self._state
        self._set_state(replace(state, ui_value=value, dirty=value != state.exec_value))
        return True

    def set_ui_and_exec_value(self, value: Any) -> bool:
        """Out-of-band sync: set both values and clear dirty, without a commit.

        Returns:
            False if the value is invalid (nothing changes).
        """
        if not self._accepts(value):
            return False
        self._set_state(ParameterState(ui_value=value, exec_value=value, dirty=False))
        return True

    def reset_to_default_value(self) -> None:
        """Set the ui value to the definition's default (local only)."""
        default = self.definition.default_value
        state = self._state
        self._set_state(replace(state, ui_value=default, dirty=default != state.exec_value))

    def reset_to_exec_value(self) -> None:
        """Set the ui value back to the last committed value (local only)."""
        state = self._state
        self._set_state(replace(state, ui_value=state.exec_value, dirty=False))

    async def execute(self, force_immediate: bool = False, skip_history: bool = False) -> Any:
        """Commit the current ui value through the namespace's change batch.

        Waits until the batch settles, then reconciles both values to what
        was actually committed (a pre-execution hook may have amended it).
        On rejection or commit failure the cell reverts to its last committed
        value. If the committed values no longer contain the parameter
        (removed by a later edit or by the hook), the cell also reverts to its
        last committed value rather than keeping the requested one.

        Args:
            force_immediate: Accept the batch right away instead of waiting for
                an explicit accept (immediate mode).
            skip_history: Do not record a history entry for the commit.

        Returns:
            The value the cell ends up with.

        Raises:
            ParameterNotFoundError: The cell's namespace was detached.
        """
        ui_value = self._state.ui_value

        batch = self._get_changes()
        # Values of an accepted batch are frozen, wait for the next one
        while batch.accepted and not batch.settled:
            await batch.wait_settled()
            batch = self._get_changes()

        # The batch waited for may have committed this parameter
        exec_value = self._state.exec_value
        result = await self._commit(batch, ui_value, exec_value, force_immediate, skip_history)
        self._set_state(ParameterState(ui_value=result, exec_value=result, dirty=False))
        return result

    def sync_exec_value(self, value: Any) -> None:
        """Record a value committed on behalf of this parameter (for example
        injected by a pre-execution hook).

        The displayed value follows unless the cell is dirty.
        """
        state = self._state
        ui_value = state.ui_value if state.dirty else value
        self._set_state(ParameterState(ui_value=ui_value, exec_value=value, dirty=ui_value != value))

    async def _commit(
        self,
        batch: ChangeBatch,
        ui_value: Any,
        exec_value: Any,
        force_immediate: bool,
        skip_history: bool,
    ) -> Any:
        pid = self.id
        if pid in batch.values and ui_value == exec_value:
            logger.debug(f"Removing change of parameter {pid}")
            del batch.values[pid]
            if batch.is_empty:
                batch.reject()
            elif force_immediate:
                batch.schedule_accept(skip_history)
            return exec_value

        logger.debug(f"Queueing change of parameter {pid} to {ui_value!r}")
        batch.values[pid] = ui_value
        if force_immediate:
            batch.schedule_accept(skip_history)
        try:
            values = await batch.wait()
        except ParamStateError as e:
            logger.debug(f"Rejecting change of parameter {pid} to {ui_value!r}, resetting to {exec_value!r}: {e}")
            return exec_value

        # Not part of the commit (removed by a later edit or by the hook)
        value = values.get(pid, exec_value)
        if value != ui_value:
            logger.debug(f"Executed change of parameter {pid} to {value!r} instead of {ui_value!r} (amended by pre-execution hook)")
        else:
            logger.debug(f"Executed change of parameter {pid} to {value!r}")
        return value


class ExportCell:
    """Definition and actions of one export of a backend session."""

    def __init__(
        self,
        namespace: str,
        remote_export: Any,
        session: Any,
        auth_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.namespace = namespace
        self.definition = ExportDefinition.from_remote(remote_export)
        self._remote = remote_export
        self._session = session
        self._auth_token = auth_token
        self._transport = transport

    def __repr__(self) -> str:
        return f"ExportCell(namespace={self.namespace!r}, id={self.definition.id!r})"

    @property
    def id(self) -> str:
        return self.definition.id

    async def request(self, parameter_overrides: Optional[Dict[str, str]] = None) -> Any:
        """Request the export.

        Parameters not given in parameter_overrides are sent with the
        stringified current value of the session's parameter.
        """
        parameters = dict(parameter_overrides or {})
        for remote in self._session.parameters.values():
            if remote.id not in parameters:
                parameters[remote.id] = remote.stringify(remote.value)
        logger.debug(f"Requesting export {self.id} of namespace {self.namespace}")
        return await self._remote.request(parameters)

    async def fetch(self, url: str) -> httpx.Response:
        """Download an export artifact.

        The session's auth token is sent as Authorization header if present.
        The response is returned as is; callers check its status.
        """
        headers = {'Authorization': self._auth_token} if self._auth_token else {}
        async with httpx.AsyncClient(transport=self._transport) as client:
            logger.debug(f"Fetching export {self.id} from {url}")
            return await client.get(url, headers=headers)
