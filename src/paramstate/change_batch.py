"""
Change batches: the pending-edit aggregate of one namespace.

A ChangeBatch collects ``parameter id -> value`` edits of one namespace and
resolves exactly once, either by accept() (run the pre-execution hook, call
the executor, fulfil all waiters) or by reject() (fail all waiters without
contacting the backend).

Lifecycle (managed by NamespaceDirectory.get_changes()):

    batch = directory.get_changes(ns, executor, priority, hook)
    batch.values['width'] = '20'
    await batch.accept()        # or batch.reject()
    values = await batch.wait() # amended values, or raises

A batch must be created while the event loop is running.
"""
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from paramstate.errors import BatchRejectedError, CommitError, ParamStateError

logger = logging.getLogger(__name__)

ParameterValues = Dict[str, Any]
Executor = Callable[[ParameterValues, str, bool], Awaitable[Any]]
PreExecutionHook = Callable[[ParameterValues, str], Any]
CommittedCallback = Callable[['ChangeBatch', ParameterValues, bool], None]
SettledCallback = Callable[['ChangeBatch'], None]


def _retrieve_exception(future: 'asyncio.Future') -> None:
    # Waiters are optional; keep asyncio from logging unretrieved errors.
    if not future.cancelled():
        future.exception()


class ChangeBatch:
    """Pending parameter changes of one namespace.

    Attributes:
        namespace: Namespace the batch belongs to.
        values: Pending ``parameter id -> value`` edits. Frozen once accepted.
        priority: Advisory ordering hint for callers reconciling several
            batches (backend sessions 0, generic parameter sets -1).
        accepted: accept() has started.
        executing: The executor round trip is in progress.
        error: Settlement error, None while pending or after success.
    """

    def __init__(
        self,
        namespace: str,
        executor: Executor,
        priority: int = 0,
        pre_execution_hook: Optional[PreExecutionHook] = None,
        on_committed: Optional[CommittedCallback] = None,
        on_settled: Optional[SettledCallback] = None,
        on_executing: Optional[SettledCallback] = None,
    ):
        self.namespace = namespace
        self.executor = executor
        self.priority = priority
        self.pre_execution_hook = pre_execution_hook
        self.values: ParameterValues = {}
        self.accepted = False
        self.executing = False
        self.error: Optional[ParamStateError] = None

        self._on_committed = on_committed
        self._on_settled = on_settled
        self._on_executing = on_executing
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._future.add_done_callback(_retrieve_exception)
        self._accept_task: Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        return (f"ChangeBatch(namespace={self.namespace!r}, values={self.values!r}, "
                f"priority={self.priority}, accepted={self.accepted}, settled={self.settled})")

    @property
    def settled(self) -> bool:
        """True once the batch was committed, failed or rejected."""
        return self._future.done()

    @property
    def is_empty(self) -> bool:
        return not self.values

    async def accept(self, skip_history: bool = False) -> bool:
        """Commit the pending values.

        No-op if the batch is already accepted or settled.

        Args:
            skip_history: Do not record a history entry for this commit.

        Returns:
            True if the executor succeeded.
        """
        if self.accepted or self.settled:
            logger.debug(f"accept() ignored, batch already resolved: {self!r}")
            return False
        self.accepted = True

        try:
            values = dict(self.values)
            if self.pre_execution_hook is not None:
                amended = self.pre_execution_hook(values, self.namespace)
                if inspect.isawaitable(amended):
                    amended = await amended
                if amended is not None:
                    values = dict(amended)

            self.executing = True
            self._fire(self._on_executing, 'executing')
            logger.debug(f"Executing changes of namespace {self.namespace}: {values}")
            await self.executor(values, self.namespace, skip_history)
        except asyncio.CancelledError:
            self.executing = False
            if not self._future.done():
                self.error = CommitError('Executing changes was cancelled', namespace=self.namespace,
                                         details={'values': dict(self.values)})
                self._future.set_exception(self.error)
            logger.debug(f"Changes of namespace {self.namespace} were cancelled")
            self._fire(self._on_settled, 'settled')
            raise
        except Exception as e:
            error = CommitError(
                f"Executing changes failed: {e}",
                namespace=self.namespace,
                details={'values': dict(self.values)},
            )
            error.__cause__ = e
            self.error = error
            self.executing = False
            if not self._future.done():
                self._future.set_exception(error)
            logger.debug(f"Changes of namespace {self.namespace} failed: {e}")
            self._fire(self._on_settled, 'settled')
            return False

        self.executing = False
        if not self._future.done():
            self._future.set_result(values)
        if self._on_committed is not None:
            try:
                self._on_committed(self, values, skip_history)
            except Exception as e:
                logger.warning(f"Error in committed callback: {e}")
        self._fire(self._on_settled, 'settled')
        return True

    def reject(self) -> bool:
        """Discard the pending values without contacting the backend.

        Cannot preempt an accept() that has already started.

        Returns:
            True if the batch was rejected by this call.
        """
        if self.accepted or self.settled:
            return False
        self.error = BatchRejectedError('Changes were rejected', namespace=self.namespace)
        self._future.set_exception(self.error)
        logger.debug(f"Rejected changes of namespace {self.namespace}: {self.values}")
        self._fire(self._on_settled, 'settled')
        return True

    def schedule_accept(self, skip_history: bool = False) -> None:
        """Accept on the next loop iteration, so edits queued in the same
        iteration end up in this batch."""
        if self._accept_task is None and not self.accepted and not self.settled:
            self._accept_task = asyncio.get_running_loop().create_task(self.accept(skip_history))

    async def wait(self) -> ParameterValues:
        """Wait for settlement.

        Returns:
            The committed (amended) values.

        Raises:
            CommitError: The executor failed.
            BatchRejectedError: The batch was rejected.
        """
        return await asyncio.shield(self._future)

    async def wait_settled(self) -> None:
        """Wait for settlement without raising."""
        try:
            await asyncio.shield(self._future)
        except ParamStateError:
            pass

    def _fire(self, callback: Optional[SettledCallback], name: str) -> None:
        if callback is None:
            return
        try:
            callback(self)
        except Exception as e:
            logger.warning(f"Error in {name} callback: {e}")
