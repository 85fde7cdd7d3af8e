from __future__ import annotations

import asyncio
import traceback
from datetime import datetime, timezone
from typing import Any

import discord
from discord.ext import commands

from warden_v1.config import Settings
from warden_v1.services.guard_service import GuardService
from warden_v1.services.logger_service import LoggerService
from warden_v1.services.name_guard_service import NameGuardService
from warden_v1.storage import MessagePackStore


def overwrite_action(before: discord.abc.GuildChannel, after: discord.abc.GuildChannel) -> str:
    old = {getattr(target, "id", None): overwrite for target, overwrite in before.overwrites.items()}
    new = {getattr(target, "id", None): overwrite for target, overwrite in after.overwrites.items()}
    if set(new) - set(old):
        return "overwrite_create"
    if set(old) - set(new):
        return "overwrite_delete"
    if any(old[key] != new[key] for key in new):
        return "overwrite_update"
    return "channel_update"


class WardenBot(commands.Bot):
    def __init__(self, settings: Settings) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True
        intents.moderation = True
        intents.webhooks = True
        super().__init__(command_prefix=settings.command_prefix, intents=intents, help_command=None)
        self.settings = settings
        self.store = MessagePackStore(settings.store_path)
        self.logger = LoggerService(self.store)
        self.guard = GuardService(settings, self.store, self.logger)
        self.name_guard = NameGuardService(settings, self.guard, self.logger)
        self.started_at = datetime.now(tz=timezone.utc)
        self._autosave_task: asyncio.Task | None = None
        self._ready_once = False

    async def setup_hook(self) -> None:
        await self.store.load()
        self._autosave_task = asyncio.create_task(self.store.autosave_loop(), name="msgpack-autosave")

    async def close(self) -> None:
        if self._autosave_task is not None:
            self._autosave_task.cancel()
        await self.store.save()
        await super().close()

    async def _resolve_owner_ids(self) -> set[int]:
        app = await self.application_info()
        if app.team is not None:
            return {member.id for member in app.team.members}
        if app.owner is not None:
            return {app.owner.id}
        return set()

    async def on_ready(self) -> None:
        if self._ready_once:
            return
        self._ready_once = True
        self.guard.trust.self_id = self.user.id if self.user else None
        owner_ids = await self._resolve_owner_ids()
        if not owner_ids and not self.settings.owner_ids:
            self.logger.log("bot.owner_missing")
            await self.close()
            return
        self.guard.trust.set_owners(owner_ids)
        self.logger.log(
            "bot.ready",
            user_id=self.user.id if self.user else None,
            guilds=len(self.guilds),
            owners=sorted(self.guard.trust.owner_ids),
        )
        results = await asyncio.gather(*(guild.chunk() for guild in self.guilds), return_exceptions=True)
        for guild, result in zip(self.guilds, results):
            if isinstance(result, BaseException):
                self.logger.log("bot.chunk_failed", guild_id=guild.id, error=str(result)[:200])
        print(f"Connected as {self.user} ({self.user.id if self.user else '?'})")

    async def _check(self, guild: discord.Guild, action: str, target_id: int | None = None) -> None:
        try:
            await self.guard.check(guild, action, target_id)
        except Exception as exc:  # noqa: BLE001
            self.logger.log("guard.check_failed", guild_id=guild.id, action=action, error=f"{type(exc).__name__}: {exc}"[:300])

    async def on_guild_remove(self, guild: discord.Guild) -> None:
        self.guard.forget(guild.id)
        self.logger.log("guild.removed", guild_id=guild.id, guild_name=guild.name)

    async def on_guild_role_create(self, role: discord.Role) -> None:
        await self._check(role.guild, "role_create", role.id)

    async def on_guild_role_delete(self, role: discord.Role) -> None:
        await self._check(role.guild, "role_delete", role.id)

    async def on_guild_role_update(self, before: discord.Role, after: discord.Role) -> None:
        if before.permissions == after.permissions and before.name == after.name:
            return
        await self._check(after.guild, "role_update", after.id)

    async def on_guild_channel_create(self, channel: discord.abc.GuildChannel) -> None:
        await self._check(channel.guild, "channel_create", channel.id)

    async def on_guild_channel_delete(self, channel: discord.abc.GuildChannel) -> None:
        await self._check(channel.guild, "channel_delete", channel.id)

    async def on_guild_channel_update(self, before: discord.abc.GuildChannel, after: discord.abc.GuildChannel) -> None:
        await self._check(after.guild, overwrite_action(before, after), after.id)

    async def on_member_ban(self, guild: discord.Guild, user: discord.User | discord.Member) -> None:
        await self._check(guild, "ban", user.id)

    async def on_member_remove(self, member: discord.Member) -> None:
        # Leaves look the same as kicks here; the audit lookup decides.
        await self._check(member.guild, "kick", member.id)

    async def on_member_update(self, before: discord.Member, after: discord.Member) -> None:
        if set(before.roles) == set(after.roles):
            return
        await self._check(after.guild, "member_role_update", after.id)

    async def on_member_join(self, member: discord.Member) -> None:
        if not member.bot:
            return
        await self._check(member.guild, "bot_add", member.id)

    async def on_webhooks_update(self, channel: discord.abc.GuildChannel) -> None:
        await self._check(channel.guild, "webhook_create")

    async def on_guild_update(self, before: discord.Guild, after: discord.Guild) -> None:
        # The name guard also feeds the resolved guild_update entry to the rate checks.
        try:
            await self.name_guard.on_guild_update(before, after)
        except Exception as exc:  # noqa: BLE001
            self.logger.log("name_guard.failed", guild_id=after.id, error=f"{type(exc).__name__}: {exc}"[:300])

    async def on_error(self, event_method: str, *args: Any, **kwargs: Any) -> None:
        self.logger.log("bot.event_error", event=event_method, error=traceback.format_exc()[-500:])


def main() -> None:
    settings = Settings.load()
    bot = WardenBot(settings)
    bot.run(settings.discord_token)
