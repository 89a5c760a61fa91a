"""
Executors commit the amended values of a change batch.

Every executor is a coroutine function ``(values, namespace, skip_history)``.
Two shapes exist:

- SessionExecutor: writes the values onto the remote parameters of a backend
  session and runs one round trip (customize, or an export request that
  also computes the registered default exports).
- Generic executors: any coroutine function, typically forwarding a payload
  into a parameter of a different namespace. BridgeExecutor implements the
  common case of serialising a generic parameter set to JSON and feeding it
  into one string parameter of a backend session.
"""
import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable

from paramstate.change_batch import Executor, ParameterValues, PreExecutionHook
from paramstate.definitions import GenericParameterDefinition, ParameterType
from paramstate.hooks import DefaultExportRegistry

if TYPE_CHECKING:
    from paramstate.directory import NamespaceDirectory

logger = logging.getLogger(__name__)

__all__ = ['Executor', 'SessionExecutor', 'BridgeExecutor', 'bridge_hook']


class SessionExecutor:
    """Executor of a backend session namespace."""

    def __init__(self, session: Any, default_exports: DefaultExportRegistry):
        self.session = session
        self.default_exports = default_exports

    async def __call__(self, values: ParameterValues, namespace: str, skip_history: bool = False) -> Any:
        parameters = self.session.parameters
        # Restored on failure
        previous = {pid: parameters[pid].value for pid in values}
        exports = self.default_exports.get(namespace)

        try:
            for pid, value in values.items():
                parameters[pid].value = value

            if exports:
                response = await self.session.request_exports(
                    dict(self.session.parameter_values),
                    exports,
                    list(self.session.outputs),
                )
                self.default_exports.set_responses(namespace, response or {})
                return response
            return await self.session.customize()
        except (Exception, asyncio.CancelledError):
            for pid, value in previous.items():
                parameters[pid].value = value
            logger.debug(f"Restored parameters of session {namespace} after failed round trip: {list(previous)}")
            raise


class BridgeExecutor:
    """Generic executor feeding a parameter set into a string parameter
    of another namespace as JSON.

    The payload always contains every currently defined parameter: the
    committed value where one exists, else the default value.

    The forwarded commit is not recorded in history; the commit of the
    generic namespace records the committed values of every namespace.

    Example:
        bridge = BridgeExecutor(directory, 'session_1', 'AppBuilder')
        bridge.set_definitions(definitions)
        directory.attach_generic('session_1_appbuilder', False, definitions, bridge)
        directory.hooks.register('session_1', bridge_hook(bridge))
    """

    def __init__(self, directory: 'NamespaceDirectory', target_namespace: str, target_parameter: str):
        self.directory = directory
        self.target_namespace = target_namespace
        self.target_parameter = target_parameter
        self._defaults: Dict[str, Any] = {}
        self._values: Dict[str, Any] = {}

    def set_definitions(self, definitions: Iterable[GenericParameterDefinition]) -> None:
        """Set the parameters included in the payload."""
        self._defaults = {d.definition.id: d.definition.default_value for d in definitions}

    def payload(self) -> Dict[str, Any]:
        """Current values of all defined parameters."""
        values = dict(self._defaults)
        for pid in values:
            if pid in self._values:
                values[pid] = self._values[pid]
        # Forget values of parameters that are no longer defined
        for pid in list(self._values):
            if pid not in values:
                del self._values[pid]
        return values

    def serialize(self) -> str:
        return json.dumps(self.payload())

    def target_cell(self):
        """The target string parameter cell, or None if unavailable."""
        cell = self.directory.get_parameter(self.target_namespace, self.target_parameter)
        if cell is None or cell.definition.type != ParameterType.STRING.value:
            return None
        return cell

    async def __call__(self, values: ParameterValues, namespace: str, skip_history: bool = False) -> Any:
        self._values.update(values)
        cell = self.target_cell()
        if cell is None:
            logger.warning(
                f"Parameter {self.target_parameter!r} of namespace {self.target_namespace} "
                f"not found or not of type {ParameterType.STRING.value!r}"
            )
            return None
        cell.set_ui_value(self.serialize())
        # Recorded by the commit of the bridged namespace
        return await cell.execute(force_immediate=True, skip_history=True)


def bridge_hook(bridge: BridgeExecutor) -> PreExecutionHook:
    """Pre-execution hook for the bridge's target namespace.

    Injects the current payload into every commit of the target namespace,
    so changes of other parameters never send a stale payload.
    """

    async def hook(values: ParameterValues, namespace: str) -> ParameterValues:
        cell = bridge.target_cell()
        if cell is None:
            logger.warning(f"Ignoring bridge hook, parameter {bridge.target_parameter!r} is not a string parameter")
            return values
        values[cell.id] = bridge.serialize()
        return values

    return hook
