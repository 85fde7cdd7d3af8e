from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

from warden_v1.storage import MessagePackStore

LOG_ROW_LIMIT = 2000

LogRow = dict[str, Any]


class LoggerService:
    """
    Event journal for guard activity.

    Rows are `{ts, event, guild_id, data}`; `guild_id` is lifted out of the
    keyword data so incident review can filter one guild's history. Rows live
    in the msgpack store, capped at `LOG_ROW_LIMIT`, and are echoed to stdout.
    """

    def __init__(self, store: MessagePackStore) -> None:
        self.store = store
        self._listeners: list[Callable[[LogRow], None]] = []

    def subscribe(self, listener: Callable[[LogRow], None]) -> None:
        self._listeners.append(listener)

    def log(self, event: str, **data: Any) -> LogRow:
        guild_id = int(data.pop("guild_id", 0) or 0)
        row: LogRow = {
            "ts": datetime.now(tz=timezone.utc).isoformat(),
            "event": event,
            "guild_id": guild_id,
            "data": data,
        }
        logs = self.store.data["logs"]
        logs.append(row)
        if len(logs) > LOG_ROW_LIMIT:
            del logs[: len(logs) - LOG_ROW_LIMIT]
        self.store.touch()
        scope = f"guild={guild_id} " if guild_id else ""
        print(f"[{row['ts']}] {event} {scope}{data}")
        for listener in self._listeners:
            try:
                listener(row)
            except Exception:  # noqa: BLE001
                continue
        return row

    def rows(self, *, prefix: str = "", guild_id: int | None = None) -> list[LogRow]:
        out: list[LogRow] = []
        for row in self.store.data["logs"]:
            if not str(row.get("event", "")).startswith(prefix):
                continue
            if guild_id is not None and int(row.get("guild_id", 0) or 0) != guild_id:
                continue
            out.append(row)
        return out

    def events(self, prefix: str = "") -> list[str]:
        return [str(row["event"]) for row in self.rows(prefix=prefix)]
