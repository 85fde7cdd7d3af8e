from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass


@dataclass(frozen=True)
class Action:
    id: int
    executor_id: int
    timestamp: float
    type: str


class ActionLog:
    """
    Per-guild record of attributed audit-log actions, grouped by executor.

    Each audit entry id is appended at most once and never edited. The one
    exception is retention pruning: with a positive `retention_sec`, actions
    older than that are dropped on the next append since no rate window can
    see them any more.
    """

    def __init__(self, retention_sec: float = 0.0) -> None:
        self.retention_sec = float(retention_sec)
        self._by_executor: dict[int, list[Action]] = defaultdict(list)
        self._ordered: list[Action] = []
        self._ids: set[int] = set()

    def __len__(self) -> int:
        return len(self._ordered)

    def __contains__(self, action_id: int) -> bool:
        return action_id in self._ids

    def add(self, action: Action, *, now: float | None = None) -> list[Action]:
        """Append `action` unless its audit entry id is already logged."""

        if now is not None and self.retention_sec > 0:
            self.prune(now - self.retention_sec)
        if action.id not in self._ids:
            self._ids.add(action.id)
            self._by_executor[action.executor_id].append(action)
            self._ordered.append(action)
        return list(self._by_executor.get(action.executor_id, ()))

    def prune(self, older_than: float) -> int:
        kept = [action for action in self._ordered if action.timestamp >= older_than]
        dropped = len(self._ordered) - len(kept)
        if not dropped:
            return 0
        self._ordered = kept
        self._ids = {action.id for action in kept}
        for executor_id in list(self._by_executor):
            rows = [action for action in self._by_executor[executor_id] if action.timestamp >= older_than]
            if rows:
                self._by_executor[executor_id] = rows
            else:
                del self._by_executor[executor_id]
        return dropped

    def for_actor(self, executor_id: int) -> list[Action]:
        return list(self._by_executor.get(executor_id, ()))

    def executors(self) -> list[int]:
        return list(self._by_executor.keys())

    def flat(self) -> list[Action]:
        return list(self._ordered)

    def recent(
        self,
        action_type: str,
        window_sec: float,
        now: float,
        executor_id: int | None = None,
    ) -> list[Action]:
        rows = self._ordered if executor_id is None else self._by_executor.get(executor_id, ())
        return [row for row in rows if row.type == action_type and now - row.timestamp <= window_sec]
