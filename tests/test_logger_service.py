from __future__ import annotations

import asyncio
from pathlib import Path

from warden_v1.services.logger_service import LOG_ROW_LIMIT, LoggerService
from warden_v1.storage import MessagePackStore


def test_log_rows_are_capped_and_fanned_out(tmp_path: Path) -> None:
    store = MessagePackStore(tmp_path / "state.msgpack")
    asyncio.run(store.load())
    logger = LoggerService(store)
    seen: list[str] = []
    logger.subscribe(lambda row: seen.append(str(row["event"])))

    def broken(row: dict[str, object]) -> None:
        raise RuntimeError("listener down")

    logger.subscribe(broken)
    for idx in range(LOG_ROW_LIMIT + 5):
        logger.log("guard.test", idx=idx)

    assert len(store.data["logs"]) == LOG_ROW_LIMIT
    assert store.data["logs"][0]["data"]["idx"] == 5
    assert len(seen) == LOG_ROW_LIMIT + 5
    assert store.dirty is True


def test_incidents_survive_save_and_reload(tmp_path: Path) -> None:
    path = tmp_path / "state.msgpack"
    store = MessagePackStore(path)
    asyncio.run(store.load())
    store.record_incident("user", guild_id=1, user_id=77, action="role_create")
    asyncio.run(store.save())

    reloaded = MessagePackStore(path)
    asyncio.run(reloaded.load())

    assert reloaded.data["incidents"] == [{"kind": "user", "guild_id": 1, "user_id": 77, "action": "role_create"}]
    assert reloaded.data["logs"] == []


def test_rows_are_scoped_by_guild(tmp_path: Path) -> None:
    store = MessagePackStore(tmp_path / "state.msgpack")
    asyncio.run(store.load())
    logger = LoggerService(store)

    row = logger.log("guard.limited", guild_id=5, user_id=77)
    logger.log("guard.limited", guild_id=6, user_id=78)
    logger.log("bot.ready")

    assert row["guild_id"] == 5
    assert row["data"] == {"user_id": 77}
    assert [r["data"]["user_id"] for r in logger.rows(prefix="guard.", guild_id=5)] == [77]
    assert logger.events("guard.") == ["guard.limited", "guard.limited"]
    assert logger.rows(guild_id=0)[0]["event"] == "bot.ready"
