from __future__ import annotations

import asyncio
from pathlib import Path
from types import SimpleNamespace

import discord

from stubs import make_settings
from warden_v1.bot import WardenBot, overwrite_action


def _channel(overwrites: dict) -> SimpleNamespace:
    return SimpleNamespace(overwrites=overwrites)


def test_overwrite_action_classifies_changes() -> None:
    role = discord.Object(id=1)
    other = discord.Object(id=2)
    base = {role: discord.PermissionOverwrite(send_messages=False)}

    assert overwrite_action(_channel(base), _channel({**base, other: discord.PermissionOverwrite()})) == "overwrite_create"
    assert overwrite_action(_channel(base), _channel({})) == "overwrite_delete"
    assert overwrite_action(_channel(base), _channel({role: discord.PermissionOverwrite(send_messages=True)})) == "overwrite_update"
    assert overwrite_action(_channel(base), _channel(dict(base))) == "channel_update"


def test_role_events_route_to_guard_with_target(tmp_path: Path) -> None:
    bot = WardenBot(make_settings(tmp_path))
    calls: list[tuple[int, str, int | None]] = []

    async def check(guild, action: str, target_id: int | None = None) -> None:
        calls.append((guild.id, action, target_id))

    bot.guard.check = check  # type: ignore[assignment]
    guild = SimpleNamespace(id=9)
    role = SimpleNamespace(id=44, guild=guild)

    asyncio.run(bot.on_guild_role_create(role))
    asyncio.run(bot.on_guild_role_delete(role))

    assert calls == [(9, "role_create", 44), (9, "role_delete", 44)]


def test_check_failures_are_logged_not_raised(tmp_path: Path) -> None:
    bot = WardenBot(make_settings(tmp_path))

    async def check(guild, action: str, target_id: int | None = None) -> None:
        raise RuntimeError("gateway hiccup")

    bot.guard.check = check  # type: ignore[assignment]
    guild = SimpleNamespace(id=9)

    asyncio.run(bot.on_member_ban(guild, SimpleNamespace(id=5)))

    assert "guard.check_failed" in bot.logger.events()


def test_human_joins_are_not_checked(tmp_path: Path) -> None:
    bot = WardenBot(make_settings(tmp_path))
    calls: list[str] = []

    async def check(guild, action: str, target_id: int | None = None) -> None:
        calls.append(action)

    bot.guard.check = check  # type: ignore[assignment]
    guild = SimpleNamespace(id=9)

    asyncio.run(bot.on_member_join(SimpleNamespace(id=5, bot=False, guild=guild)))
    asyncio.run(bot.on_member_join(SimpleNamespace(id=6, bot=True, guild=guild)))

    assert calls == ["bot_add"]
