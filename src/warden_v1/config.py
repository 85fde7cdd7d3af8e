from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import discord


DEFAULT_DANGEROUS_PERMISSIONS: tuple[str, ...] = (
    "administrator",
    "ban_members",
    "kick_members",
    "manage_channels",
    "manage_guild",
    "manage_roles",
    "manage_webhooks",
    "manage_expressions",
    "mention_everyone",
)

DEFAULT_ACTION_COUNTS: dict[str, int] = {
    "role_create": 3,
    "role_delete": 2,
    "role_update": 3,
    "channel_create": 3,
    "channel_delete": 2,
    "channel_update": 4,
    "overwrite_create": 4,
    "overwrite_update": 4,
    "overwrite_delete": 4,
    "ban": 3,
    "kick": 3,
    "member_role_update": 4,
    "bot_add": 1,
    "webhook_create": 2,
    "guild_update": 2,
}


@dataclass(frozen=True)
class ActionLimit:
    count: int
    window_sec: float


@dataclass(frozen=True)
class Settings:
    discord_token: str
    command_prefix: str = "!"
    store_path: Path = Path("data/warden_v1.msgpack")
    owner_ids: frozenset[int] = frozenset()
    ignored_ids: frozenset[int] = frozenset()
    trusted_bot_ids: frozenset[int] = frozenset()
    action_interval_sec: float = 10.0
    action_limits: dict[str, ActionLimit] = field(default_factory=dict)
    global_limit: ActionLimit = ActionLimit(count=10, window_sec=60.0)
    dangerous_permissions: discord.Permissions = field(
        default_factory=lambda: permissions_from_names(DEFAULT_DANGEROUS_PERMISSIONS)
    )
    muted_role_name: str = "Muted"
    banned_name_words: tuple[str, ...] = ()
    action_retention_sec: float | None = None

    @staticmethod
    def load(path: Path = Path("passwords.txt")) -> "Settings":
        values = _parse_passwords_file(path)
        token = values.get("DISCORD_TOKEN", "").strip()
        if not token:
            raise RuntimeError("DISCORD_TOKEN is required in passwords.txt.")
        interval = float(values.get("ACTION_INTERVAL_SEC", "10"))
        limits: dict[str, ActionLimit] = {
            name: ActionLimit(count=count, window_sec=interval) for name, count in DEFAULT_ACTION_COUNTS.items()
        }
        for key, value in values.items():
            if key.startswith("LIMIT_"):
                limits[key[len("LIMIT_") :].lower()] = _parse_limit(value, interval)
        danger_names = _split_names(values.get("DANGEROUS_PERMISSIONS", "")) or DEFAULT_DANGEROUS_PERMISSIONS
        retention = values.get("ACTION_RETENTION_SEC", "").strip()
        return Settings(
            discord_token=token,
            command_prefix=values.get("COMMAND_PREFIX", "!"),
            store_path=Path(values.get("STORE_PATH", "data/warden_v1.msgpack")),
            owner_ids=_split_ids(values.get("OWNER_IDS", "")),
            ignored_ids=_split_ids(values.get("IGNORED_IDS", "")),
            trusted_bot_ids=_split_ids(values.get("TRUSTED_BOT_IDS", "")),
            action_interval_sec=interval,
            action_limits=limits,
            global_limit=ActionLimit(
                count=int(values.get("GLOBAL_MAX", "10")),
                window_sec=float(values.get("GLOBAL_WINDOW_SEC", "60")),
            ),
            dangerous_permissions=permissions_from_names(danger_names),
            muted_role_name=values.get("MUTED_ROLE_NAME", "Muted").strip() or "Muted",
            banned_name_words=tuple(word.lower() for word in _split_names(values.get("BANNED_NAME_WORDS", ""))),
            action_retention_sec=float(retention) if retention else None,
        )

    def limit_for(self, action: str) -> ActionLimit:
        limit = self.action_limits.get(action)
        if limit is not None:
            return limit
        return ActionLimit(count=DEFAULT_ACTION_COUNTS.get(action, 3), window_sec=self.action_interval_sec)

    def retention_sec(self) -> float:
        """
        How long the action log keeps entries. `0` means forever.

        Defaults to the widest configured window so that no rate check ever
        looks at a pruned action.
        """

        if self.action_retention_sec is not None:
            return max(0.0, self.action_retention_sec)
        windows = [limit.window_sec for limit in self.action_limits.values()]
        windows.extend((self.action_interval_sec, self.global_limit.window_sec))
        return max(windows)


def permissions_from_names(names: tuple[str, ...] | list[str]) -> discord.Permissions:
    perms = discord.Permissions.none()
    for name in names:
        if name not in discord.Permissions.VALID_FLAGS:
            raise RuntimeError(f"Unknown permission in DANGEROUS_PERMISSIONS: {name}")
        setattr(perms, name, True)
    return perms


def _parse_limit(raw: str, default_window: float) -> ActionLimit:
    raw = raw.strip()
    if "/" in raw:
        count, window = raw.split("/", 1)
        return ActionLimit(count=int(count), window_sec=float(window))
    return ActionLimit(count=int(raw), window_sec=default_window)


def _split_ids(raw: str) -> frozenset[int]:
    return frozenset(int(part) for part in _split_names(raw) if part.isdigit())


def _split_names(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def _parse_passwords_file(path: Path) -> dict[str, str]:
    if not path.exists():
        raise RuntimeError("passwords.txt not found. Copy passwords.example.txt to passwords.txt and fill values.")
    values: dict[str, str] = {}
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip()
    return values
