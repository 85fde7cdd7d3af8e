from __future__ import annotations

from warden_v1.services.action_log import Action, ActionLog


def _action(aid: int, user_id: int, ts: float, kind: str = "role_create") -> Action:
    return Action(id=aid, executor_id=user_id, timestamp=ts, type=kind)


def test_add_returns_executor_history_in_order() -> None:
    log = ActionLog()
    log.add(_action(1, 10, 100.0))
    log.add(_action(2, 20, 101.0))
    history = log.add(_action(3, 10, 102.0))

    assert [row.id for row in history] == [1, 3]
    assert [row.id for row in log.flat()] == [1, 2, 3]
    assert set(log.executors()) == {10, 20}
    assert len(log) == 3


def test_recent_filters_by_type_window_and_executor() -> None:
    log = ActionLog()
    log.add(_action(1, 10, 80.0))
    log.add(_action(2, 10, 95.0))
    log.add(_action(3, 10, 98.0, kind="ban"))
    log.add(_action(4, 20, 99.0))

    assert [row.id for row in log.recent("role_create", 10.0, now=100.0)] == [2, 4]
    assert [row.id for row in log.recent("role_create", 10.0, now=100.0, executor_id=10)] == [2]
    assert [row.id for row in log.recent("ban", 10.0, now=100.0)] == [3]
    assert log.recent("role_create", 10.0, now=100.0, executor_id=99) == []


def test_window_edge_is_inclusive() -> None:
    log = ActionLog()
    log.add(_action(1, 10, 90.0))
    assert len(log.recent("role_create", 10.0, now=100.0)) == 1


def test_retention_drops_only_actions_outside_every_window() -> None:
    log = ActionLog(retention_sec=60.0)
    log.add(_action(1, 10, 0.0), now=0.0)
    log.add(_action(2, 20, 30.0), now=30.0)
    log.add(_action(3, 10, 100.0), now=100.0)

    assert [row.id for row in log.flat()] == [3]
    assert log.for_actor(20) == []
    assert [row.id for row in log.for_actor(10)] == [3]


def test_zero_retention_keeps_everything() -> None:
    log = ActionLog(retention_sec=0)
    for idx in range(5):
        log.add(_action(idx, 10, float(idx) * 1000), now=float(idx) * 1000)
    assert len(log) == 5


def test_repeated_entry_id_is_logged_once() -> None:
    log = ActionLog()
    log.add(_action(1, 10, 100.0))
    history = log.add(_action(1, 10, 100.0))

    assert [row.id for row in history] == [1]
    assert len(log) == 1
    assert 1 in log
    assert 2 not in log


def test_pruned_ids_are_forgotten() -> None:
    log = ActionLog(retention_sec=10.0)
    log.add(_action(1, 10, 0.0), now=0.0)
    log.add(_action(2, 10, 50.0), now=50.0)

    assert 1 not in log
    assert 2 in log
