"""Pytest configuration and shared fixtures."""
import pytest
from typing import Any, Dict, List, Optional

import paramstate.config as config_module
from paramstate import (
    GenericParameterDefinition,
    NamespaceDirectory,
    ParameterDefinition,
    ParamStateConfig,
)


class FakeParameter:
    """In-memory remote parameter."""

    def __init__(self, id: str, value: Any, type: str = 'String', name: Optional[str] = None,
                 display_name: Optional[str] = None, order: Optional[float] = None):
        self.id = id
        self.name = name or id
        self.display_name = display_name
        self.type = type
        self.default_value = value
        self.value = value
        self.order = order

    def validate(self, value: Any) -> bool:
        if self.type == 'Float':
            try:
                float(value)
            except (TypeError, ValueError):
                return False
            return True
        return isinstance(value, str)

    def stringify(self, value: Any) -> str:
        return str(value)


class FakeExport:
    """In-memory remote export recording its requests."""

    def __init__(self, id: str, name: Optional[str] = None):
        self.id = id
        self.name = name or id
        self.requests: List[Dict[str, str]] = []

    async def request(self, parameters: Dict[str, str]) -> Any:
        self.requests.append(dict(parameters))
        return {'export': self.id, 'parameters': dict(parameters)}


class FakeSession:
    """In-memory backend session.

    customize() and request_exports() record the parameter values they see.
    Tests can make the round trip fail (fail_with) or hold it until an
    asyncio.Event is set (gate, created inside the running loop).
    """

    def __init__(self, id: str, parameters: Dict[str, Any], exports=(), outputs=('out_1',)):
        self.id = id
        self.parameters = {
            pid: value if isinstance(value, FakeParameter) else FakeParameter(pid, value)
            for pid, value in parameters.items()
        }
        self.exports = {eid: FakeExport(eid) for eid in exports}
        self.outputs = {oid: object() for oid in outputs}
        self.customize_calls: List[Dict[str, Any]] = []
        self.export_calls: List[tuple] = []
        self.fail_with: Optional[Exception] = None
        self.gate = None
        self.started = None

    @property
    def parameter_values(self) -> Dict[str, Any]:
        return {pid: p.value for pid, p in self.parameters.items()}

    async def _round_trip(self) -> None:
        if self.started is not None:
            self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with

    async def customize(self) -> Any:
        self.customize_calls.append(self.parameter_values)
        await self._round_trip()
        return {'customized': True}

    async def request_exports(self, parameters, exports, outputs):
        self.export_calls.append((dict(parameters), list(exports), list(outputs)))
        await self._round_trip()
        return {eid: {'content': f"{eid}-result"} for eid in exports}


class RecordingExecutor:
    """Generic executor recording (values, namespace, skip_history)."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.fail_with: Optional[Exception] = None

    async def __call__(self, values, namespace, skip_history=False):
        self.calls.append((dict(values), namespace, skip_history))
        if self.fail_with is not None:
            raise self.fail_with


class RecordingNavigator:
    def __init__(self):
        self.pushed: List[Any] = []
        self.replaced: List[Any] = []

    def push_state(self, entry: Any) -> None:
        self.pushed.append(entry)

    def replace_state(self, entry: Any) -> None:
        self.replaced.append(entry)


class RecordingNotifier:
    def __init__(self):
        self.errors: List[tuple] = []

    def notify_error(self, namespace, error) -> None:
        self.errors.append((namespace, error))


@pytest.fixture(autouse=True)
def reset_default_config():
    """Restore the process default config after each test."""
    original = config_module._default_config
    yield
    config_module._default_config = original


@pytest.fixture
def navigator():
    return RecordingNavigator()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def directory(navigator, notifier):
    """Directory with recording collaborators and a short debounce window."""
    return NamespaceDirectory(
        config=ParamStateConfig(debounce_ms=20),
        navigator=navigator,
        notifier=notifier,
    )


@pytest.fixture
def make_session():
    """Factory: make_session('A', {'width': '10'}, exports=['glb'])."""
    return FakeSession


@pytest.fixture
def make_executor():
    return RecordingExecutor


@pytest.fixture
def string_params():
    """Factory for generic String parameter definitions: string_params(a='1', b='2')."""

    def _make(**defaults):
        return [
            GenericParameterDefinition(ParameterDefinition(id=pid, name=pid, type='String', default_value=value))
            for pid, value in defaults.items()
        ]

    return _make
