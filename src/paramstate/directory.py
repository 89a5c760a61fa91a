"""
NamespaceDirectory: registry of parameter and export cells per namespace.

The directory owns, per namespace:
- parameter cells (id -> ParameterCell) and export cells (id -> ExportCell)
- the live change batch, if any
- the namespaces it depends on (one hop, for is_busy())

and, shared by all namespaces, the pre-execution hooks, the default exports
and the history journal.

A directory is created explicitly and passed to whoever needs it:

    directory = NamespaceDirectory(navigator=browser_history)
    directory.attach_session(session, accept_reject_mode=False)
    cell = directory.get_parameter(session.id, 'Width')
    cell.set_ui_value('20')
    await cell.execute(force_immediate=True)

UI code should subscribe with add_change_callback() and look cells up again
on notification instead of caching them across attach/detach.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import httpx

from paramstate.change_batch import ChangeBatch, Executor, ParameterValues, PreExecutionHook
from paramstate.config import ParamStateConfig, get_default_config
from paramstate.definitions import ExportDefinition, GenericParameterDefinition, ParameterDefinition
from paramstate.errors import (
    CommitError,
    HistoryError,
    ParameterNotFoundError,
    ParamStateError,
    ValidationError,
)
from paramstate.executor import SessionExecutor
from paramstate.history import HistoryEntry, HistoryJournal, RestoreResult, RestoreTier, Snapshot
from paramstate.hooks import DefaultExportRegistry, PreExecutionHookRegistry
from paramstate.session import LoggingNotifier, Navigator, Notifier
from paramstate.state_cell import ExportCell, ParameterCell
from paramstate.validation import make_validator

logger = logging.getLogger(__name__)

AcceptRejectModeSelector = Callable[[ParameterDefinition], bool]
AcceptRejectMode = Union[bool, AcceptRejectModeSelector]


def _as_selector(accept_reject_mode: AcceptRejectMode) -> AcceptRejectModeSelector:
    if callable(accept_reject_mode):
        return accept_reject_mode
    mode = bool(accept_reject_mode)
    return lambda definition: mode


def _as_list(value: Union[None, str, Iterable[str]]) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def _remote_validator(remote: Any) -> Callable[[Any, bool], bool]:
    """Adapt ``remote.validate(value) -> bool`` to the cell validator signature."""

    def is_valid(value: Any, raise_error: bool = False) -> bool:
        if remote.validate(value):
            return True
        if raise_error:
            raise ValidationError(f"The value {value!r} is not valid.", parameter_id=remote.id)
        return False

    return is_valid


class NamespaceDirectory:
    """Parameter/export cells, change batches and history of all namespaces."""

    def __init__(
        self,
        config: Optional[ParamStateConfig] = None,
        navigator: Optional[Navigator] = None,
        notifier: Optional[Notifier] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            config: Tunables, defaults to the process default config.
            navigator: Host navigation receiving one entry per recorded commit.
            notifier: Receives commit errors, defaults to logging them.
            http_transport: httpx transport used by export cells (tests).
        """
        self.config = config or get_default_config()
        self.navigator = navigator
        self.notifier = notifier or LoggingNotifier()
        self.http_transport = http_transport

        self.hooks = PreExecutionHookRegistry()
        self.default_exports = DefaultExportRegistry()
        self.history = HistoryJournal(max_size=self.config.max_history_size)

        self._parameters: Dict[str, Dict[str, ParameterCell]] = {}
        self._exports: Dict[str, Dict[str, ExportCell]] = {}
        self._dependencies: Dict[str, List[str]] = {}
        self._changes: Dict[str, ChangeBatch] = {}
        # Identifies one attachment of a namespace, see _cell_changes_getter()
        self._attachments: Dict[str, object] = {}
        self._priorities: Dict[str, int] = {}
        self._change_callbacks: List[Callable[[], None]] = []

    # === Change notification ===

    def add_change_callback(self, callback: Callable[[], None]) -> None:
        """Subscribe to structural changes (namespaces, cells, batches)."""
        if callback not in self._change_callbacks:
            self._change_callbacks.append(callback)

    def remove_change_callback(self, callback: Callable[[], None]) -> None:
        if callback in self._change_callbacks:
            self._change_callbacks.remove(callback)

    def add_history_changed_callback(self, callback: Callable[[], None]) -> None:
        """Subscribe to history journal changes (push, navigation, reset)."""
        self.history.add_changed_callback(callback)

    def remove_history_changed_callback(self, callback: Callable[[], None]) -> None:
        self.history.remove_changed_callback(callback)

    def _notify_change(self) -> None:
        for callback in list(self._change_callbacks):
            try:
                callback()
            except Exception as e:
                logger.warning(f"Change callback failed: {e}")

    # === Attach / detach ===

    def _attach(self, namespace: str, priority: int) -> object:
        attachment = self._attachments.get(namespace)
        if attachment is None:
            attachment = self._attachments[namespace] = object()
        self._priorities[namespace] = priority
        return attachment

    def _cell_changes_getter(self, namespace: str, executor: Executor, priority: int) -> Callable[[], ChangeBatch]:
        attachment = self._attach(namespace, priority)

        def get_changes() -> ChangeBatch:
            # Cells of a detached namespace must not reach a later attachment
            if self._attachments.get(namespace) is not attachment:
                raise ParameterNotFoundError(f"Namespace {namespace} was detached", namespace=namespace)
            return self.get_changes(namespace, executor, priority, self.hooks.get(namespace))

        return get_changes

    def attach_session(self, session: Any, accept_reject_mode: AcceptRejectMode = False,
                       auth_token: Optional[str] = None) -> bool:
        """Create cells for all parameters and exports of a backend session.

        The namespace is the session id.

        Args:
            session: Live backend session.
            accept_reject_mode: Bool, or selector ``definition -> bool``.
            auth_token: Sent as Authorization header by ExportCell.fetch().

        Returns:
            False if the namespace was already attached.
        """
        namespace = session.id
        if namespace in self._parameters or namespace in self._exports:
            logger.warning(f"Namespace {namespace} is already attached, ignoring")
            return False

        selector = _as_selector(accept_reject_mode)
        executor = SessionExecutor(session, self.default_exports)
        get_changes = self._cell_changes_getter(namespace, executor, self.config.session_priority)

        parameters: Dict[str, ParameterCell] = {}
        for pid, remote in session.parameters.items():
            definition = ParameterDefinition.from_remote(remote)
            parameters[pid] = ParameterCell(
                namespace,
                definition,
                get_changes,
                accept_reject_mode=selector(definition),
                value=remote.value,
                is_valid=_remote_validator(remote),
                stringify=remote.stringify,
            )

        exports = {
            eid: ExportCell(namespace, remote, session, auth_token=auth_token, transport=self.http_transport)
            for eid, remote in session.exports.items()
        }

        self._parameters[namespace] = parameters
        self._exports[namespace] = exports
        self._dependencies[namespace] = []
        logger.debug(f"Attached session {namespace}: {len(parameters)} parameters, {len(exports)} exports")
        self._notify_change()
        return True

    def _create_generic_cell(self, namespace: str, generic: GenericParameterDefinition,
                             selector: AcceptRejectModeSelector,
                             get_changes: Callable[[], ChangeBatch]) -> ParameterCell:
        definition = generic.definition
        return ParameterCell(
            namespace,
            definition,
            get_changes,
            accept_reject_mode=selector(definition),
            value=generic.value,
            is_valid=generic.is_valid or make_validator(definition),
            stringify=generic.stringify,
        )

    def attach_generic(
        self,
        namespace: str,
        accept_reject_mode: AcceptRejectMode,
        definitions: Union[GenericParameterDefinition, Sequence[GenericParameterDefinition]],
        executor: Executor,
        depends_on: Union[None, str, Iterable[str]] = None,
    ) -> bool:
        """Create cells for a caller-declared parameter set.

        Returns:
            False if the namespace already has parameters.
        """
        if namespace in self._parameters:
            logger.debug(f"Namespace {namespace} already has parameters, ignoring")
            return False
        if isinstance(definitions, GenericParameterDefinition):
            definitions = [definitions]

        selector = _as_selector(accept_reject_mode)
        get_changes = self._cell_changes_getter(namespace, executor, self.config.generic_priority)
        self._parameters[namespace] = {
            d.definition.id: self._create_generic_cell(namespace, d, selector, get_changes)
            for d in definitions
        }
        self._dependencies[namespace] = _as_list(depends_on)
        logger.debug(f"Attached generic namespace {namespace}: {len(self._parameters[namespace])} parameters")
        self._notify_change()
        return True

    def sync_generic(
        self,
        namespace: str,
        accept_reject_mode: AcceptRejectMode,
        definitions: Union[GenericParameterDefinition, Sequence[GenericParameterDefinition]],
        executor: Executor,
        depends_on: Union[None, str, Iterable[str]] = None,
    ) -> bool:
        """Reconcile the cells of a generic namespace with new definitions.

        - Cells whose definition is unchanged are kept. If the definition
          carries a value that differs from the committed value, the cell is
          re-synced to it (set_ui_and_exec_value).
        - Cells whose definition changed are replaced.
        - Cells without a definition are dropped.

        Returns:
            True if cells were created, replaced or dropped.
        """
        if isinstance(definitions, GenericParameterDefinition):
            definitions = [definitions]

        selector = _as_selector(accept_reject_mode)
        get_changes = self._cell_changes_getter(namespace, executor, self.config.generic_priority)
        existing = self._parameters.get(namespace, {})
        cells: Dict[str, ParameterCell] = {}
        has_changes = False

        for generic in definitions:
            pid = generic.definition.id
            cell = existing.get(pid)
            if cell is not None and cell.definition == generic.definition:
                cells[pid] = cell
                if generic.value is not None and cell.state.exec_value != generic.value:
                    if cell.set_ui_and_exec_value(generic.value):
                        logger.debug(f"Updated value of generic parameter {pid} to {generic.value!r}")
                    else:
                        logger.warning(f"Could not update value of generic parameter {pid} to {generic.value!r}")
            else:
                cells[pid] = self._create_generic_cell(namespace, generic, selector, get_changes)
                has_changes = True

        if not has_changes and namespace in self._parameters and len(existing) == len(cells):
            return False

        self._parameters[namespace] = cells
        self._dependencies[namespace] = _as_list(depends_on)
        logger.debug(f"Synced generic namespace {namespace}: {len(cells)} parameters")
        self._notify_change()
        return True

    def detach(self, namespace: str) -> bool:
        """Remove the cells, dependency edge, live batch, pre-execution hook
        and default exports of a namespace.

        A batch that is executing is not cancelled; its late settlement is
        ignored by the directory.

        Returns:
            False if the namespace was not attached.
        """
        if namespace not in self._parameters and namespace not in self._exports:
            return False
        self._parameters.pop(namespace, None)
        self._exports.pop(namespace, None)
        self._dependencies.pop(namespace, None)
        self._attachments.pop(namespace, None)
        self._priorities.pop(namespace, None)
        self.hooks.deregister(namespace)
        self.default_exports.remove_namespace(namespace)
        batch = self._changes.pop(namespace, None)
        if batch is not None and not batch.settled:
            logger.debug(f"Detached namespace {namespace} with unsettled changes: {batch!r}")
        logger.debug(f"Detached namespace {namespace}")
        self._notify_change()
        return True

    def get_namespaces(self) -> List[str]:
        return list(self._parameters.keys() | self._exports.keys())

    def get_dependencies(self, namespace: str) -> List[str]:
        return list(self._dependencies.get(namespace, ()))

    # === Lookup ===

    def get_parameters(self, namespace: str) -> Dict[str, ParameterCell]:
        return dict(self._parameters.get(namespace, {}))

    def get_parameter(self, namespace: str, ref: str, type: Optional[str] = None) -> Optional[ParameterCell]:
        """Find a parameter by id, else by name, else by display name.

        Args:
            namespace: Namespace to search.
            ref: Id, name or display name.
            type: Only consider parameters of this type.
        """
        cells = [
            cell for cell in self._parameters.get(namespace, {}).values()
            if type is None or cell.definition.type == type
        ]
        for attr in ('id', 'name', 'display_name'):
            for cell in cells:
                if getattr(cell.definition, attr) == ref:
                    return cell
        return None

    def get_exports(self, namespace: str) -> Dict[str, ExportCell]:
        return dict(self._exports.get(namespace, {}))

    def get_export(self, namespace: str, ref: str) -> Optional[ExportCell]:
        """Find an export by id, else by name, else by display name."""
        cells = list(self._exports.get(namespace, {}).values())
        for attr in ('id', 'name', 'display_name'):
            for cell in cells:
                if getattr(cell.definition, attr) == ref:
                    return cell
        return None

    def get_sorted_definitions(self, namespace: str) -> List[Union[ParameterDefinition, ExportDefinition]]:
        """Parameter definitions followed by export definitions, each sorted
        by ``order`` (definitions without order last, stable)."""

        def key(definition):
            return (definition.order is None, definition.order or 0)

        parameters = sorted((c.definition for c in self._parameters.get(namespace, {}).values()), key=key)
        exports = sorted((c.definition for c in self._exports.get(namespace, {}).values()), key=key)
        return parameters + exports

    # === Change batches ===

    def get_changes(self, namespace: str, executor: Executor, priority: int,
                    pre_execution_hook: Optional[PreExecutionHook] = None) -> ChangeBatch:
        """Get the live change batch of a namespace, creating it if needed.

        Raises:
            ParameterNotFoundError: The namespace is not attached.
        """
        batch = self._changes.get(namespace)
        if batch is not None:
            return batch
        if namespace not in self._attachments:
            raise ParameterNotFoundError(f"Namespace {namespace} is not attached", namespace=namespace)
        batch = ChangeBatch(
            namespace,
            executor,
            priority=priority,
            pre_execution_hook=pre_execution_hook,
            on_committed=self._on_batch_committed,
            on_settled=self._on_batch_settled,
            on_executing=lambda b: self._notify_change(),
        )
        self._changes[namespace] = batch
        logger.debug(f"Created change batch for namespace {namespace}")
        self._notify_change()
        return batch

    def remove_changes(self, namespace: str) -> None:
        """Forget the live batch of a namespace (without settling it)."""
        if self._changes.pop(namespace, None) is not None:
            self._notify_change()

    def get_pending_changes(self, namespaces: Optional[Iterable[str]] = None) -> List[ChangeBatch]:
        """Live batches, ascending by priority (generic sets before sessions)."""
        selected = None if namespaces is None else set(namespaces)
        batches = [
            batch for ns, batch in self._changes.items()
            if (selected is None or ns in selected) and not batch.settled
        ]
        return sorted(batches, key=lambda b: b.priority)

    async def accept_all_changes(self, namespaces: Optional[Iterable[str]] = None,
                                 skip_history: bool = False) -> bool:
        """Accept pending batches one after the other.

        Generic parameter sets go first, so payloads they forward into a
        backend session are part of that session's commit.

        Returns:
            True if every accepted batch committed successfully.
        """
        ok = True
        for batch in self.get_pending_changes(namespaces):
            if batch.accepted or batch.settled:
                continue
            if not await batch.accept(skip_history):
                ok = False
        return ok

    def reject_all_changes(self, namespaces: Optional[Iterable[str]] = None) -> int:
        """Reject pending batches that are not yet accepted.

        Returns:
            Number of rejected batches.
        """
        return sum(1 for batch in self.get_pending_changes(namespaces) if batch.reject())

    def is_busy(self, namespace: str) -> bool:
        """True if the namespace's batch, or that of a namespace it directly
        depends on, is executing."""
        for ns in [namespace] + self._dependencies.get(namespace, []):
            batch = self._changes.get(ns)
            if batch is not None and batch.executing:
                return True
        return False

    def _on_batch_committed(self, batch: ChangeBatch, values: ParameterValues, skip_history: bool) -> None:
        namespace = batch.namespace
        cells = self._parameters.get(namespace)
        if self._changes.get(namespace) is not batch or cells is None:
            logger.debug(f"Ignoring commit of detached namespace {namespace}")
            return
        # Values injected by the hook were committed for cells that are not waiting
        for pid, value in values.items():
            cell = cells.get(pid)
            if cell is not None and cell.state.exec_value != value:
                cell.sync_exec_value(value)
        if skip_history:
            return
        self.push_history_state(self.get_current_state())

    def _on_batch_settled(self, batch: ChangeBatch) -> None:
        namespace = batch.namespace
        if self._changes.get(namespace) is not batch:
            logger.debug(f"Ignoring settlement of orphaned batch of namespace {namespace}")
            return
        del self._changes[namespace]
        if isinstance(batch.error, CommitError):
            try:
                self.notifier.notify_error(namespace, batch.error)
            except Exception as e:
                logger.warning(f"Notifier failed: {e}")
        self._notify_change()

    # === Batch updates and state snapshots ===

    async def batch_parameter_value_update(self, namespace: str, values: Mapping[str, Any],
                                           skip_history: bool = False) -> None:
        """Set and commit several parameter values of a namespace at once.

        All ids and values are validated before anything changes.

        Raises:
            ParameterNotFoundError: Unknown parameter id.
            ValidationError: Invalid value.
        """
        cells = self._parameters.get(namespace)
        if cells is None:
            logger.debug(f"Ignoring batch update of unknown namespace {namespace}")
            return

        for pid, value in values.items():
            cell = cells.get(pid)
            if cell is None:
                raise ParameterNotFoundError(
                    f"Parameter {pid} does not exist", namespace=namespace, parameter_id=pid
                )
            if not cell.is_valid(value, False):
                raise ValidationError(
                    f"Value {value!r} is not valid", namespace=namespace, parameter_id=pid
                )

        pids = list(values)
        if not pids:
            return
        for pid in pids:
            cells[pid].set_ui_value(values[pid])
        # The last one accepts the batch
        await asyncio.gather(*(
            cells[pid].execute(force_immediate=i == len(pids) - 1, skip_history=skip_history)
            for i, pid in enumerate(pids)
        ))

    def get_default_state(self) -> Snapshot:
        """namespace -> parameter id -> default value."""
        return {
            ns: {pid: cell.definition.default_value for pid, cell in cells.items()}
            for ns, cells in self._parameters.items()
        }

    def get_current_state(self) -> Snapshot:
        """namespace -> parameter id -> committed value."""
        return {
            ns: {pid: cell.state.exec_value for pid, cell in cells.items()}
            for ns, cells in self._parameters.items()
        }

    # === History ===

    def push_history_state(self, snapshot: Mapping[str, Mapping[str, Any]]) -> HistoryEntry:
        """Record a history entry and push it to the host navigation."""
        current = self.history.current
        entry = HistoryEntry.create(snapshot, not_before=current.timestamp if current else None)
        self.history.push(entry)
        if self.navigator is not None:
            try:
                self.navigator.push_state(entry.to_dict())
            except Exception as e:
                logger.warning(f"Navigator push_state failed: {e}")
        return entry

    async def restore_history_state(self, snapshot: Mapping[str, Mapping[str, Any]],
                                    skip_history: bool = False) -> None:
        """Commit the values of the snapshot that differ from the committed
        ones, concurrently per namespace.

        Namespaces are started in ascending priority, so payloads forwarded
        by generic parameter sets reach a backend session before it commits.
        """
        updates = {}
        for ns, values in snapshot.items():
            cells = self._parameters.get(ns, {})
            changed = {
                pid: value for pid, value in values.items()
                if pid not in cells or cells[pid].state.exec_value != value
            }
            if changed:
                updates[ns] = changed
        order = sorted(updates, key=lambda ns: self._priorities.get(ns, 0))
        logger.debug(f"Restoring values of namespaces {order}")
        await asyncio.gather(*(
            self.batch_parameter_value_update(ns, updates[ns], skip_history)
            for ns in order
        ))

    async def restore_history_state_from_index(self, index: int) -> HistoryEntry:
        """Replay the entry at index and move the cursor there.

        Raises:
            HistoryError: If the index is out of range.
        """
        entry = self.history.get(index)
        await self.restore_history_state(entry.snapshot, skip_history=True)
        self.history.move_to(index)
        logger.info(f"Restored history entry {index} ({entry.timestamp})")
        return entry

    async def restore_history_state_from_timestamp(self, timestamp: float) -> HistoryEntry:
        """Replay the entry with the timestamp and move the cursor there.

        Raises:
            HistoryError: If no entry has the timestamp.
        """
        index = self.history.find_by_timestamp(timestamp)
        if index < 0:
            raise HistoryError(f"No history entry found for timestamp {timestamp}",
                               details={'timestamp': timestamp})
        return await self.restore_history_state_from_index(index)

    async def restore_history_state_from_entry(
        self, entry: Union[HistoryEntry, Mapping[str, Any]]
    ) -> RestoreResult:
        """Restore an entry handed back by host navigation.

        Tries, in order: an entry with the same timestamp, an entry with an
        equal snapshot (entries from before the last reset), and finally a
        direct replay that leaves the journal untouched.
        """
        if not isinstance(entry, HistoryEntry):
            entry = HistoryEntry.from_dict(entry)

        index = self.history.find_by_timestamp(entry.timestamp)
        if index >= 0:
            await self.restore_history_state_from_index(index)
            return RestoreResult(RestoreTier.EXACT_MATCH, index)

        index = self.history.find_by_snapshot(entry.snapshot)
        if index >= 0:
            logger.debug(f"Restoring history entry {index} by matching values")
            await self.restore_history_state_from_index(index)
            return RestoreResult(RestoreTier.STRUCTURAL_MATCH, index)

        logger.debug(f"No matching history entry, directly restoring values of {entry.timestamp}")
        await self.restore_history_state(entry.snapshot, skip_history=True)
        return RestoreResult(RestoreTier.FALLBACK)

    async def handle_navigation(self, state: Any) -> Optional[RestoreResult]:
        """Host navigation callback (back/forward).

        Errors are reported to the notifier instead of being raised.

        Args:
            state: The navigation state pushed earlier (entry dict or
                HistoryEntry), None for states this directory did not push.
        """
        if not state:
            return None
        try:
            return await self.restore_history_state_from_entry(state)
        except ParamStateError as e:
            logger.warning(f"Could not restore navigation state: {e}")
            try:
                self.notifier.notify_error(getattr(e, 'namespace', None), e)
            except Exception as notify_error:
                logger.warning(f"Notifier failed: {notify_error}")
            return None

    def seed_history(self) -> HistoryEntry:
        """Start the journal with the current committed state.

        Call once the host finished loading. Replaces the host navigation
        state with the seed entry.
        """
        self.history.reset()
        entry = HistoryEntry.create(self.get_current_state())
        self.history.push(entry)
        if self.navigator is not None:
            try:
                self.navigator.replace_state(entry.to_dict())
            except Exception as e:
                logger.warning(f"Navigator replace_state failed: {e}")
        logger.info(f"Seeded history with {len(entry.snapshot)} namespace(s)")
        return entry

    def reset_history(self) -> None:
        self.history.reset()

    # === Teardown ===

    def close(self) -> None:
        """Reset history and detach all namespaces."""
        self.reset_history()
        for namespace in self.get_namespaces():
            self.detach(namespace)
        self.hooks.clear()
        self.default_exports.clear()
        logger.debug('Directory closed')
