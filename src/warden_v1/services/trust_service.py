from __future__ import annotations

from warden_v1.config import Settings


class TrustPolicy:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.owner_ids: set[int] = set(settings.owner_ids)
        self.self_id: int | None = None

    def set_owners(self, owner_ids: set[int] | list[int]) -> None:
        self.owner_ids = set(self.settings.owner_ids) | {int(uid) for uid in owner_ids}

    def is_privileged(self, user_id: int) -> bool:
        return user_id in self.owner_ids or (self.self_id is not None and user_id == self.self_id)

    def is_ignored(self, user_id: int) -> bool:
        return self.is_privileged(user_id) or user_id in self.settings.ignored_ids

    def is_trusted_bot(self, user_id: int) -> bool:
        return user_id in self.settings.trusted_bot_ids
