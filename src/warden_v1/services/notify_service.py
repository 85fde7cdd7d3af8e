from __future__ import annotations

import discord

from warden_v1.services.logger_service import LoggerService


class OwnerNotifier:
    def __init__(self, logger: LoggerService) -> None:
        self.logger = logger

    async def resolve_owner(self, guild: discord.Guild) -> discord.abc.User | None:
        owner = guild.owner
        if owner is not None:
            return owner
        if not guild.owner_id:
            return None
        try:
            return await guild.fetch_member(guild.owner_id)
        except (discord.Forbidden, discord.HTTPException):
            return None

    async def notify(self, guild: discord.Guild, text: str, *, times: int = 1) -> int:
        """DM the guild owner `times` times. Returns how many messages went out."""

        owner = await self.resolve_owner(guild)
        if owner is None:
            self.logger.log("notify.owner_missing", guild_id=guild.id)
            return 0
        sent = 0
        for _ in range(max(1, times)):
            try:
                await owner.send(text)
                sent += 1
            except (discord.Forbidden, discord.HTTPException) as exc:
                self.logger.log("notify.failed", guild_id=guild.id, owner_id=owner.id, error=str(exc)[:200])
                break
        return sent
