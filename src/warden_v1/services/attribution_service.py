from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable

import discord

from warden_v1.services.action_log import Action
from warden_v1.services.logger_service import LoggerService

AUDIT_FETCH_LIMIT = 5
RETRY_DELAY_SEC = 1.0
MAX_RETRIES = 1
STALE_AFTER_SEC = 5.0


class AttributionResolver:
    """
    Finds the audit-log entry that explains a state change we just observed.

    The audit log can lag behind gateway events, so an empty lookup is retried
    once after a short delay. Anything older than `STALE_AFTER_SEC` is not
    trusted to explain the change and is dropped.
    """

    def __init__(
        self,
        logger: LoggerService,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.logger = logger
        self.sleep = sleep
        self.clock = clock

    async def fetch_entry(
        self,
        guild: discord.Guild,
        action: str,
        target_id: int | None = None,
    ) -> discord.AuditLogEntry | None:
        entry = None
        for attempt in range(MAX_RETRIES + 1):
            if attempt:
                await self.sleep(RETRY_DELAY_SEC)
            entry = await self._lookup(guild, action, target_id)
            if entry is not None:
                break
        if entry is None:
            return None
        age = self.clock() - entry.created_at.timestamp()
        if age > STALE_AFTER_SEC:
            self.logger.log("attribution.stale", guild_id=guild.id, action=action, entry_id=entry.id, age_sec=round(age, 3))
            return None
        return entry

    async def _lookup(
        self,
        guild: discord.Guild,
        action: str,
        target_id: int | None,
    ) -> discord.AuditLogEntry | None:
        kind = audit_action(action)
        try:
            async for entry in guild.audit_logs(limit=AUDIT_FETCH_LIMIT, action=kind):
                if target_id is None:
                    return entry
                if getattr(entry.target, "id", None) == target_id:
                    return entry
        except Exception as exc:  # noqa: BLE001
            self.logger.log("attribution.lookup_failed", guild_id=guild.id, action=action, error=str(exc)[:200])
        return None


def audit_action(name: str) -> discord.AuditLogAction:
    try:
        return discord.AuditLogAction[name]
    except KeyError:
        raise ValueError(f"Unknown audit log action: {name}") from None


def to_action(entry: discord.AuditLogEntry) -> Action:
    return Action(
        id=int(entry.id),
        executor_id=int(entry.user.id),
        timestamp=entry.created_at.timestamp(),
        type=entry.action.name,
    )
