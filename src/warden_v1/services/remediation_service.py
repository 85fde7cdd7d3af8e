from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Iterable

import discord

from warden_v1.config import Settings
from warden_v1.services.logger_service import LoggerService
from warden_v1.services.trust_service import TrustPolicy

CLEANUP_KINDS = ("channels", "roles", "bots")
RECENT_BOT_JOIN_SEC = 3 * 60 * 60
REMEDIATION_REASON = "Warden: dangerous activity"


async def settle_all(aws: Iterable[Awaitable[Any]]) -> list[Any]:
    """
    Await every operation and return each outcome in order.

    A failed operation shows up as its exception in the result list; it never
    cancels or aborts its siblings.
    """

    return list(await asyncio.gather(*aws, return_exceptions=True))


def failures(outcomes: list[Any]) -> list[BaseException]:
    return [row for row in outcomes if isinstance(row, BaseException)]


def grants_dangerous(permissions: discord.Permissions, dangerous: discord.Permissions) -> bool:
    return bool(permissions.value & dangerous.value)


def strip_dangerous(permissions: discord.Permissions, dangerous: discord.Permissions) -> discord.Permissions:
    return discord.Permissions(permissions.value & ~dangerous.value)


def bot_role_for(guild: discord.Guild, user_id: int) -> discord.Role | None:
    for role in guild.roles:
        tags = role.tags
        if tags is not None and tags.bot_id == user_id:
            return role
    return None


def iter_overwrites(guild: discord.Guild) -> Iterable[tuple[discord.abc.GuildChannel, Any, discord.PermissionOverwrite]]:
    for channel in guild.channels:
        if isinstance(channel, discord.Thread):
            continue
        for target, overwrite in channel.overwrites.items():
            yield channel, target, overwrite


class RemediationService:
    def __init__(
        self,
        settings: Settings,
        trust: TrustPolicy,
        logger: LoggerService,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.trust = trust
        self.logger = logger
        self.clock = clock

    @property
    def dangerous(self) -> discord.Permissions:
        return self.settings.dangerous_permissions

    async def punish(self, guild: discord.Guild, user_id: int) -> list[Any]:
        if self.trust.is_privileged(user_id):
            return []
        ops: list[Awaitable[Any]] = []
        keep: list[discord.Role] = []
        muted = discord.utils.get(guild.roles, name=self.settings.muted_role_name)
        bot_role = bot_role_for(guild, user_id)
        if muted is not None:
            keep.append(muted)
        if bot_role is not None:
            keep.append(bot_role)
        ops.append(self._set_member_roles(guild, user_id, keep))
        if bot_role is not None:
            ops.append(self._strip_role(bot_role))
        for channel, target, overwrite in iter_overwrites(guild):
            allow, _deny = overwrite.pair()
            if getattr(target, "id", None) == user_id and grants_dangerous(allow, self.dangerous):
                ops.append(self._delete_overwrite(channel, target))
        outcomes = await settle_all(ops)
        self._log_batch(guild, "punish", outcomes, user_id=user_id)
        return outcomes

    async def cleanup(self, guild: discord.Guild, kind: str) -> list[Any]:
        if kind not in CLEANUP_KINDS:
            raise ValueError("Invalid cleanup type")
        ops: list[Awaitable[Any]] = []
        if kind == "channels":
            for channel, target, overwrite in iter_overwrites(guild):
                allow, _deny = overwrite.pair()
                target_id = getattr(target, "id", None)
                if not self.trust.is_trusted_bot(target_id) and grants_dangerous(allow, self.dangerous):
                    ops.append(self._delete_overwrite(channel, target))
        elif kind == "roles":
            for role in guild.roles:
                bot_id = role.tags.bot_id if role.tags is not None else None
                if bot_id and self.trust.is_trusted_bot(bot_id):
                    continue
                if grants_dangerous(role.permissions, self.dangerous):
                    ops.append(self._strip_role(role))
        else:
            now = self.clock()
            for member in guild.members:
                if not member.bot:
                    continue
                joined = member.joined_at.timestamp() if member.joined_at is not None else 0.0
                if now - joined > RECENT_BOT_JOIN_SEC:
                    continue
                if self.trust.is_ignored(member.id):
                    continue
                ops.append(member.kick(reason=REMEDIATION_REASON))
        outcomes = await settle_all(ops)
        self._log_batch(guild, f"cleanup.{kind}", outcomes)
        return outcomes

    async def ban(self, guild: discord.Guild, user_id: int) -> None:
        await guild.ban(discord.Object(id=user_id), reason=REMEDIATION_REASON)

    async def raise_verification(self, guild: discord.Guild) -> bool:
        if guild.verification_level == discord.VerificationLevel.highest:
            return False
        try:
            await guild.edit(verification_level=discord.VerificationLevel.highest, reason=REMEDIATION_REASON)
        except (discord.Forbidden, discord.HTTPException) as exc:
            self.logger.log("remediation.verification_failed", guild_id=guild.id, error=str(exc)[:200])
            return False
        return True

    async def _set_member_roles(self, guild: discord.Guild, user_id: int, roles: list[discord.Role]) -> None:
        member = guild.get_member(user_id)
        if member is None:
            member = await guild.fetch_member(user_id)
        await member.edit(roles=roles, reason=REMEDIATION_REASON)

    async def _strip_role(self, role: discord.Role) -> None:
        await role.edit(permissions=strip_dangerous(role.permissions, self.dangerous), reason=REMEDIATION_REASON)

    async def _delete_overwrite(self, channel: discord.abc.GuildChannel, target: Any) -> None:
        await channel.set_permissions(target, overwrite=None, reason=REMEDIATION_REASON)

    def _log_batch(self, guild: discord.Guild, label: str, outcomes: list[Any], **data: object) -> None:
        failed = failures(outcomes)
        self.logger.log(
            f"remediation.{label}",
            guild_id=guild.id,
            attempted=len(outcomes),
            failed=len(failed),
            **data,
        )
        for exc in failed:
            self.logger.log("remediation.failed", guild_id=guild.id, step=label, error=f"{type(exc).__name__}: {exc}"[:200])
