from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable

import discord

from warden_v1.config import Settings
from warden_v1.services.action_log import Action, ActionLog
from warden_v1.services.attribution_service import AttributionResolver, to_action
from warden_v1.services.logger_service import LoggerService
from warden_v1.services.notify_service import OwnerNotifier
from warden_v1.services.remediation_service import RemediationService, failures, settle_all
from warden_v1.services.single_flight import GLOBAL_KEY, SingleFlight
from warden_v1.services.trust_service import TrustPolicy
from warden_v1.storage import MessagePackStore

GLOBAL_ALERT_TEXT = "**WARNING: GLOBAL RATE LIMIT WAKE UP!!**"
GLOBAL_ALERT_REPEAT = 5


class GuildGuard:
    """
    Detection state and entry points for one guild.

    Owns the guild's action log and its single-flight keys; both live exactly as
    long as this object and are never persisted.
    """

    def __init__(self, service: "GuardService", guild: discord.Guild) -> None:
        self.service = service
        self.guild = guild
        self.actions = ActionLog(retention_sec=service.settings.retention_sec())
        self.flights = SingleFlight()

    @property
    def settings(self) -> Settings:
        return self.service.settings

    def is_privileged(self, user_id: int) -> bool:
        return self.service.trust.is_privileged(user_id)

    def is_ignored(self, user_id: int) -> bool:
        return self.service.trust.is_ignored(user_id)

    async def check(self, action: str, target_id: int | None = None) -> None:
        entry = await self.service.resolver.fetch_entry(self.guild, action, target_id)
        await self.check_entry(entry)

    async def check_entry(self, entry: discord.AuditLogEntry | None) -> bool:
        """Run both rate checks for an already resolved entry. False when it was skipped."""

        if entry is None or entry.user is None:
            return False
        user_id = entry.user.id
        if self.is_privileged(user_id) or self.service.trust.is_trusted_bot(user_id):
            return False
        record = to_action(entry)
        if record.id in self.actions:
            return False
        # Appended before either evaluation starts so both always see it.
        self.record(record)
        await asyncio.gather(
            self._evaluate_user(record, label=str(entry.user)),
            self.check_global(record.type),
        )
        return True

    def record(self, action: Action) -> list[Action]:
        return self.actions.add(action, now=self.service.clock())

    async def check_user(self, action: Action, *, label: str | None = None) -> bool:
        if action.id in self.actions:
            return False
        self.record(action)
        return await self._evaluate_user(action, label=label)

    async def _evaluate_user(self, action: Action, *, label: str | None = None) -> bool:
        user_id = action.executor_id
        if self.is_ignored(user_id) or user_id in self.flights:
            return False
        limit = self.settings.limit_for(action.type)
        hits = self.actions.recent(action.type, limit.window_sec, self.service.clock(), executor_id=user_id)
        if len(hits) < limit.count:
            return False
        async with self.flights.hold(user_id) as claimed:
            if not claimed:
                return False
            self.service.logger.log(
                "guard.limited",
                guild_id=self.guild.id,
                user_id=user_id,
                action=action.type,
                count=len(hits),
                threshold=limit.count,
            )
            self.service.store.record_incident(
                "user",
                guild_id=self.guild.id,
                user_id=user_id,
                action=action.type,
                count=len(hits),
                ts=self.service.clock(),
            )
            name = label or str(user_id)
            # A slow or failing DM must not hold up the punish call.
            await settle_all(
                [
                    self.service.notifier.notify(self.guild, f"**{name}** (ID: `{user_id}`) is limited!!\nType: `{action.type}`"),
                    self.service.remediation.punish(self.guild, user_id),
                ]
            )
        return True

    async def check_global(self, action_type: str) -> bool:
        if GLOBAL_KEY in self.flights:
            return False
        limit = self.settings.global_limit
        hits = self.actions.recent(action_type, limit.window_sec, self.service.clock())
        if len(hits) < limit.count:
            return False
        async with self.flights.hold(GLOBAL_KEY) as claimed:
            if not claimed:
                return False
            implicated = list(dict.fromkeys(row.executor_id for row in hits))
            self.service.logger.log(
                "guard.global_breach",
                guild_id=self.guild.id,
                action=action_type,
                count=len(hits),
                threshold=limit.count,
                implicated=implicated,
            )
            self.service.store.record_incident(
                "global",
                guild_id=self.guild.id,
                action=action_type,
                count=len(hits),
                implicated=implicated,
                ts=self.service.clock(),
            )
            remediation = self.service.remediation
            ops: list[Awaitable[Any]] = [
                self.service.notifier.notify(self.guild, GLOBAL_ALERT_TEXT, times=GLOBAL_ALERT_REPEAT),
            ]
            for user_id in implicated:
                if self.is_ignored(user_id):
                    ops.append(remediation.punish(self.guild, user_id))
                else:
                    ops.append(remediation.ban(self.guild, user_id))
            ops.append(remediation.cleanup(self.guild, "roles"))
            ops.append(remediation.cleanup(self.guild, "channels"))
            outcomes = await settle_all(ops)
            self.service.logger.log(
                "guard.global_settled",
                guild_id=self.guild.id,
                attempted=len(outcomes),
                failed=len(failures(outcomes)),
            )
            await remediation.raise_verification(self.guild)
        return True

    async def punish(self, user_id: int) -> list[Any]:
        return await self.service.remediation.punish(self.guild, user_id)

    async def cleanup(self, kind: str) -> list[Any]:
        return await self.service.remediation.cleanup(self.guild, kind)


class GuardService:
    def __init__(
        self,
        settings: Settings,
        store: MessagePackStore,
        logger: LoggerService,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.store = store
        self.logger = logger
        self.clock = clock
        self.trust = TrustPolicy(settings)
        self.resolver = AttributionResolver(logger, sleep=sleep, clock=clock)
        self.remediation = RemediationService(settings, self.trust, logger, clock=clock)
        self.notifier = OwnerNotifier(logger)
        self._guards: dict[int, GuildGuard] = {}

    def for_guild(self, guild: discord.Guild) -> GuildGuard:
        guard = self._guards.get(guild.id)
        if guard is None:
            guard = GuildGuard(self, guild)
            self._guards[guild.id] = guard
        else:
            guard.guild = guild
        return guard

    def forget(self, guild_id: int) -> bool:
        return self._guards.pop(guild_id, None) is not None

    async def check(self, guild: discord.Guild, action: str, target_id: int | None = None) -> None:
        await self.for_guild(guild).check(action, target_id)
