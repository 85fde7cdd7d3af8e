from __future__ import annotations

import re

import discord

from warden_v1.config import Settings
from warden_v1.services.guard_service import GuardService
from warden_v1.services.logger_service import LoggerService
from warden_v1.utils.discord_utils import is_invite, normalize_name


class NameGuardService:
    """Watches guild setting changes that the rate limits cannot catch."""

    def __init__(self, settings: Settings, guard: GuardService, logger: LoggerService) -> None:
        self.settings = settings
        self.guard = guard
        self.logger = logger
        self._banned = [re.compile(re.escape(word), re.IGNORECASE) for word in settings.banned_name_words]

    def is_bad_name(self, name: str) -> bool:
        text = normalize_name(name)
        return is_invite(text) or any(pattern.search(text) for pattern in self._banned)

    async def on_guild_update(self, before: discord.Guild, after: discord.Guild) -> bool:
        """Returns True when the new name was reverted."""

        if after.default_notifications == discord.NotificationLevel.all_messages:
            try:
                await after.edit(
                    default_notifications=discord.NotificationLevel.only_mentions,
                    reason="All Messages? R U KIDDING ME?",
                )
            except (discord.Forbidden, discord.HTTPException) as exc:
                self.logger.log("name_guard.notifications_failed", guild_id=after.id, error=str(exc)[:200])
        if after.name == before.name:
            return False

        # One lookup serves both the name check and the rate check.
        entry = await self.guard.resolver.fetch_entry(after, "guild_update")
        reverted = await self._revert_bad_name(before, after, entry)
        await self.guard.for_guild(after).check_entry(entry)
        return reverted

    async def _revert_bad_name(
        self,
        before: discord.Guild,
        after: discord.Guild,
        entry: discord.AuditLogEntry | None,
    ) -> bool:
        executor = entry.user if entry is not None else None
        if executor is not None and self.guard.trust.is_privileged(executor.id):
            return False
        if not self.is_bad_name(after.name):
            return False

        tag = str(executor) if executor is not None else "Unknown#0000"
        bad_name = after.name
        reverted = True
        try:
            await after.edit(name=before.name, reason=f"({tag}): BAD GUILD NAME!")
        except (discord.Forbidden, discord.HTTPException) as exc:
            reverted = False
            self.logger.log("name_guard.revert_failed", guild_id=after.id, error=str(exc)[:200])
        else:
            self.logger.log(
                "name_guard.reverted",
                guild_id=after.id,
                bad_name=bad_name[:100],
                user_id=executor.id if executor is not None else 0,
            )
        if executor is not None:
            await self.guard.for_guild(after).punish(executor.id)
        return reverted
