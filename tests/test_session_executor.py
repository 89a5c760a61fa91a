"""Tests for the backend session executor."""
import asyncio

from paramstate import CommitError, DefaultExportRegistry, SessionExecutor


def test_customize_with_amended_values(make_session):
    async def _inner():
        session = make_session('S', {'a': '1', 'b': '2'})
        executor = SessionExecutor(session, DefaultExportRegistry())

        result = await executor({'a': '5'}, 'S', False)

        assert result == {'customized': True}
        assert session.customize_calls == [{'a': '5', 'b': '2'}]
        assert session.parameters['a'].value == '5'

    asyncio.run(_inner())


def test_default_exports_use_one_round_trip(make_session):
    async def _inner():
        session = make_session('S', {'a': '1', 'b': '2'}, outputs=['o1', 'o2'])
        registry = DefaultExportRegistry()
        registry.register('S', ['e1', 'e2'])
        executor = SessionExecutor(session, registry)

        await executor({'b': '3'}, 'S', False)

        assert session.customize_calls == []
        assert session.export_calls == [({'a': '1', 'b': '3'}, ['e1', 'e2'], ['o1', 'o2'])]
        assert registry.get_responses('S') == {
            'e1': {'content': 'e1-result'},
            'e2': {'content': 'e2-result'},
        }

    asyncio.run(_inner())


def test_failure_restores_touched_parameters(make_session):
    async def _inner():
        session = make_session('S', {'a': '1', 'b': '2'})
        session.fail_with = RuntimeError('round trip failed')
        executor = SessionExecutor(session, DefaultExportRegistry())

        try:
            await executor({'a': '5', 'b': '6'}, 'S', False)
        except RuntimeError as e:
            assert str(e) == 'round trip failed'
        else:
            raise AssertionError('executor did not re-raise')

        assert session.parameter_values == {'a': '1', 'b': '2'}

    asyncio.run(_inner())


def test_failed_commit_reverts_cell_and_notifies(directory, notifier, make_session):
    async def _inner():
        session = make_session('S', {'width': '10'})
        session.fail_with = RuntimeError('backend down')
        directory.attach_session(session)
        cell = directory.get_parameter('S', 'width')

        cell.set_ui_value('20')
        assert await cell.execute(force_immediate=True) == '10'

        assert cell.state.ui_value == '10'
        assert cell.state.dirty is False
        assert session.parameters['width'].value == '10'
        assert len(directory.history) == 0
        namespace, error = notifier.errors[0]
        assert namespace == 'S'
        assert isinstance(error, CommitError)
        assert isinstance(error.__cause__, RuntimeError)

    asyncio.run(_inner())


def test_session_commit_records_full_snapshot(directory, make_session):
    async def _inner():
        session = make_session('S', {'width': '10', 'height': '5'})
        directory.attach_session(session)
        cell = directory.get_parameter('S', 'width')

        cell.set_ui_value('20')
        await cell.execute(force_immediate=True)

        assert directory.history.current.snapshot == {'S': {'width': '20', 'height': '5'}}

    asyncio.run(_inner())
