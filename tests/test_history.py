"""Tests for the history journal, replay and host navigation."""
import asyncio

import pytest

from paramstate import (
    HistoryEntry,
    HistoryError,
    HistoryJournal,
    ParameterNotFoundError,
    RestoreTier,
)


def _entry(value, timestamp):
    return HistoryEntry({'N': {'a': value}}, timestamp=timestamp)


class TestHistoryJournal:

    def test_empty_journal(self):
        journal = HistoryJournal()
        assert journal.index == -1
        assert journal.current is None
        assert len(journal) == 0

    def test_push_truncates_after_cursor(self):
        journal = HistoryJournal()
        for i in range(3):
            journal.push(_entry(str(i), float(i)))
        journal.move_to(0)

        journal.push(_entry('x', 10.0))

        assert [e.timestamp for e in journal.entries] == [0.0, 10.0]
        assert journal.index == 1

    def test_max_size_drops_oldest(self):
        journal = HistoryJournal(max_size=2)
        for i in range(3):
            journal.push(_entry(str(i), float(i)))

        assert [e.timestamp for e in journal.entries] == [1.0, 2.0]
        assert journal.index == 1

    def test_invalid_index_raises(self):
        journal = HistoryJournal()
        journal.push(_entry('1', 1.0))

        with pytest.raises(HistoryError):
            journal.move_to(1)
        with pytest.raises(HistoryError):
            journal.get(-1)

    def test_lookup_by_timestamp_and_snapshot(self):
        journal = HistoryJournal()
        journal.push(_entry('1', 1.0))
        journal.push(_entry('2', 2.0))

        assert journal.find_by_timestamp(2.0) == 1
        assert journal.find_by_timestamp(3.0) == -1
        assert journal.find_by_snapshot({'N': {'a': '1'}}) == 0
        assert journal.find_by_snapshot({'N': {'a': '3'}}) == -1

    def test_changed_callbacks(self):
        journal = HistoryJournal()
        events = []
        journal.add_changed_callback(lambda: events.append(journal.index))
        journal.push(_entry('1', 1.0))
        journal.reset()
        journal.reset()

        assert events == [0, -1]

    def test_entry_dict_round_trip_and_errors(self):
        entry = _entry('1', 1.5)
        assert HistoryEntry.from_dict(entry.to_dict()) == entry

        with pytest.raises(HistoryError):
            HistoryEntry.from_dict({'snapshot': {}})


def test_commit_pushes_entry_and_navigation_state(directory, navigator, make_executor, string_params):
    async def _inner():
        directory.attach_generic('N', False, string_params(a='1', b='2'), make_executor())
        cell = directory.get_parameter('N', 'a')

        cell.set_ui_value('5')
        await cell.execute(force_immediate=True)

        assert len(directory.history) == 1
        entry = directory.history.current
        assert entry.snapshot == {'N': {'a': '5', 'b': '2'}}
        assert navigator.pushed == [entry.to_dict()]

    asyncio.run(_inner())


def test_skip_history_commit_is_not_recorded(directory, navigator, make_executor, string_params):
    async def _inner():
        directory.attach_generic('N', False, string_params(a='1'), make_executor())
        cell = directory.get_parameter('N', 'a')

        cell.set_ui_value('5')
        await cell.execute(force_immediate=True, skip_history=True)

        assert len(directory.history) == 0
        assert navigator.pushed == []

    asyncio.run(_inner())


def test_restore_by_timestamp_round_trip(directory, make_executor, string_params):
    async def _inner():
        executor = make_executor()
        directory.attach_generic('N', False, string_params(a='1', b='2'), executor)
        entry = directory.push_history_state({'N': {'a': '7', 'b': '8'}})

        await directory.restore_history_state_from_timestamp(entry.timestamp)

        assert directory.get_current_state() == {'N': {'a': '7', 'b': '8'}}
        assert len(directory.history) == 1
        assert executor.calls == [({'a': '7', 'b': '8'}, 'N', True)]

    asyncio.run(_inner())


def test_restore_from_index_moves_cursor(directory, make_executor, string_params):
    async def _inner():
        directory.attach_generic('N', False, string_params(a='1'), make_executor())
        cell = directory.get_parameter('N', 'a')
        directory.seed_history()
        for value in ('2', '3'):
            cell.set_ui_value(value)
            await cell.execute(force_immediate=True)
        assert directory.history.index == 2

        await directory.restore_history_state_from_index(0)

        assert cell.state.exec_value == '1'
        assert directory.history.index == 0
        assert len(directory.history) == 3

        with pytest.raises(HistoryError):
            await directory.restore_history_state_from_index(5)
        with pytest.raises(HistoryError):
            await directory.restore_history_state_from_timestamp(-1.0)

    asyncio.run(_inner())


def test_seed_history_replaces_navigation_state(directory, navigator, make_executor, string_params):
    directory.attach_generic('N', False, string_params(a='1'), make_executor())

    entry = directory.seed_history()

    assert directory.history.entries == [entry]
    assert entry.snapshot == {'N': {'a': '1'}}
    assert navigator.replaced == [entry.to_dict()]
    assert navigator.pushed == []


def test_navigation_restore_tiers(directory, navigator, make_executor, string_params):
    async def _inner():
        executor = make_executor()
        directory.attach_generic('N', False, string_params(a='1'), executor)
        cell = directory.get_parameter('N', 'a')
        directory.seed_history()
        cell.set_ui_value('2')
        await cell.execute(force_immediate=True)

        # Back to the seed entry, as handed back by the host
        result = await directory.handle_navigation(navigator.replaced[0])
        assert result.tier is RestoreTier.EXACT_MATCH
        assert result.index == 0
        assert cell.state.exec_value == '1'

        # Entry from before a reset, matched by its values
        result = await directory.handle_navigation(_entry('2', 1.0).to_dict())
        assert result.tier is RestoreTier.STRUCTURAL_MATCH
        assert result.index == 1
        assert cell.state.exec_value == '2'

        # Unknown entry, replayed without touching the journal
        result = await directory.restore_history_state_from_entry(_entry('3', 2.0))
        assert result.tier is RestoreTier.FALLBACK
        assert result.index is None
        assert cell.state.exec_value == '3'
        assert len(directory.history) == 2
        assert directory.history.index == 1
        assert executor.calls[-1] == ({'a': '3'}, 'N', True)

    asyncio.run(_inner())


def test_navigation_errors_go_to_notifier(directory, notifier, make_executor, string_params):
    async def _inner():
        directory.attach_generic('N', False, string_params(a='1'), make_executor())

        assert await directory.handle_navigation(None) is None
        assert await directory.handle_navigation({'snapshot': {'N': {'zzz': '1'}}, 'timestamp': 3.0}) is None

        assert len(notifier.errors) == 1
        assert isinstance(notifier.errors[0][1], ParameterNotFoundError)

    asyncio.run(_inner())


def test_history_changed_callbacks(directory, make_executor, string_params):
    events = []
    directory.add_history_changed_callback(lambda: events.append(len(directory.history)))
    directory.attach_generic('N', False, string_params(a='1'), make_executor())

    directory.seed_history()
    directory.reset_history()

    assert events == [1, 0]
