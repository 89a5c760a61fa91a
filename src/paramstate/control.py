"""
Debounced control of a single parameter cell.

ParameterControl is the widget side of a cell: it holds the value currently
displayed, coalesces rapid edits with a per-control debounce timer and then
dispatches the last value to the cell:

    control = ParameterControl(directory, 'session_1', 'Width')
    control.handle_change('21')
    control.handle_change('22')   # cancels the pending '21'
    await control.wait_idle()     # one commit carrying '22'

In immediate mode the dispatch commits right away; in accept/reject mode it
only queues the value until the namespace's changes are accepted or rejected.
Must be used while the event loop is running.
"""
import asyncio
import logging
from typing import Any, Callable, Optional, Set

from paramstate.config import ParamStateConfig
from paramstate.directory import NamespaceDirectory
from paramstate.errors import ParameterNotFoundError
from paramstate.state_cell import ParameterCell, ParameterState

logger = logging.getLogger(__name__)


class ParameterControl:
    """Debounced, displayed value of one parameter."""

    def __init__(
        self,
        directory: NamespaceDirectory,
        namespace: str,
        parameter: str,
        accept_reject_mode: Optional[bool] = None,
        disable_if_dirty: bool = False,
        debounce_ms: Optional[int] = None,
        config: Optional[ParamStateConfig] = None,
        initializer: Optional[Callable[[ParameterState], Any]] = None,
    ):
        """
        Args:
            directory: Directory owning the cell.
            namespace: Namespace of the parameter.
            parameter: Id, name or display name of the parameter.
            accept_reject_mode: Overrides the cell's mode.
            disable_if_dirty: Report the control as disabled while dirty.
            debounce_ms: Debounce window in immediate mode, defaults to the
                config (1000 ms). Accept/reject mode uses its own window (0 ms).
            config: Defaults to the directory's config.
            initializer: Maps the cell state to the initial displayed value,
                defaults to the ui value.

        Raises:
            ParameterNotFoundError: The parameter does not exist.
        """
        self.directory = directory
        self.namespace = namespace
        self.parameter = parameter
        self.disable_if_dirty = disable_if_dirty

        cell = directory.get_parameter(namespace, parameter)
        if cell is None:
            raise ParameterNotFoundError(
                f"Parameter {parameter} not found", namespace=namespace, parameter_id=parameter
            )
        self._cell = cell
        self.accept_reject_mode = cell.accept_reject_mode if accept_reject_mode is None else accept_reject_mode

        config = config or directory.config
        if self.accept_reject_mode:
            self.debounce_seconds = config.debounce_seconds(True)
        elif debounce_ms is not None:
            self.debounce_seconds = debounce_ms / 1000.0
        else:
            self.debounce_seconds = config.debounce_seconds(False)

        self.value = (initializer or (lambda state: state.ui_value))(cell.state)
        self.on_cancel: Optional[Callable[[], None]] = None

        self._timer: Optional[asyncio.TimerHandle] = None
        self._timer_done: Optional[asyncio.Future] = None
        self._tasks: Set[asyncio.Task] = set()
        self.attached = True
        self._cell.on_state_changed(self._on_state_changed)
        directory.add_change_callback(self._on_directory_changed)

    def __repr__(self) -> str:
        return f"ParameterControl(namespace={self.namespace!r}, parameter={self.parameter!r}, value={self.value!r})"

    @property
    def cell(self) -> ParameterCell:
        return self._cell

    @property
    def state(self) -> ParameterState:
        return self._cell.state

    @property
    def busy(self) -> bool:
        """Changes of the namespace (or a namespace it depends on) are executing."""
        return self.directory.is_busy(self.namespace)

    @property
    def disabled(self) -> bool:
        return (self.disable_if_dirty and self.state.dirty) or self.busy

    @property
    def can_cancel(self) -> bool:
        return self.accept_reject_mode and self.state.dirty and not self.busy

    @property
    def pending(self) -> bool:
        """A dispatch is scheduled or a commit is in flight."""
        return self._timer is not None or bool(self._tasks)

    def _on_state_changed(self, state: ParameterState) -> None:
        # Follow ui value changes made elsewhere (other controls, history)
        if self._timer is None:
            self.value = state.ui_value

    def _on_directory_changed(self) -> None:
        # Cells are replaced on re-attach and sync, never reuse a dropped one
        cell = self.directory.get_parameter(self.namespace, self.parameter)
        if cell is None:
            if self.attached:
                logger.debug(f"Parameter {self.namespace}.{self.parameter} was detached")
            self.attached = False
            return
        self.attached = True
        if cell is self._cell:
            return
        self._cell.off_state_changed(self._on_state_changed)
        self._cell = cell
        cell.on_state_changed(self._on_state_changed)
        if self._timer is None:
            self.value = cell.state.ui_value

    def handle_change(self, value: Any, timeout_ms: Optional[int] = None) -> None:
        """Display value and dispatch it to the cell after the debounce window.

        A pending dispatch of an earlier value is cancelled.

        Args:
            value: New value.
            timeout_ms: Overrides the debounce window.
        """
        loop = asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        if self._timer_done is None:
            self._timer_done = loop.create_future()
        self.value = value
        delay = self.debounce_seconds if timeout_ms is None else timeout_ms / 1000.0
        self._timer = loop.call_later(delay, self._dispatch, value)

    def _dispatch(self, value: Any) -> None:
        self._timer = None
        if self._timer_done is not None and not self._timer_done.done():
            self._timer_done.set_result(None)
        self._timer_done = None

        if not self.attached:
            logger.debug(f"Dropping value {value!r}, parameter {self.namespace}.{self.parameter} is detached")
            return
        if not self._cell.set_ui_value(value):
            logger.debug(f"Discarding invalid value {value!r} of {self.namespace}.{self.parameter}")
            self.value = self._cell.state.ui_value
            return
        task = asyncio.get_running_loop().create_task(self._execute(self._cell))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute(self, cell: ParameterCell) -> None:
        try:
            await cell.execute(force_immediate=not self.accept_reject_mode)
        except ParameterNotFoundError as e:
            logger.debug(f"Commit of {self.namespace}.{self.parameter} dropped: {e}")

    def cancel(self) -> bool:
        """Return to the committed value (accept/reject mode only).

        Returns:
            False if there is nothing to cancel.
        """
        if not self.can_cancel:
            return False
        if self.on_cancel is not None:
            try:
                self.on_cancel()
            except Exception as e:
                logger.warning(f"Error in cancel callback: {e}")
        self.handle_change(self.state.exec_value, 0)
        return True

    async def wait_idle(self) -> None:
        """Wait until no dispatch is scheduled and no commit is in flight.

        In accept/reject mode a commit stays in flight until the namespace's
        changes are accepted or rejected.
        """
        while self.pending:
            if self._timer_done is not None:
                await asyncio.shield(self._timer_done)
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        """Drop a scheduled dispatch and unsubscribe from the cell and the
        directory.

        Commits already in flight are not cancelled.
        """
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._timer_done is not None and not self._timer_done.done():
            self._timer_done.set_result(None)
        self._timer_done = None
        self._cell.off_state_changed(self._on_state_changed)
        self.directory.remove_change_callback(self._on_directory_changed)
