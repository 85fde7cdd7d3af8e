from __future__ import annotations

from warden_v1.utils.discord_utils import is_invite, normalize_name


def test_invite_detection() -> None:
    assert is_invite("come to discord.gg/abc123") is True
    assert is_invite("https://discord.com/invite/xyz") is True
    assert is_invite("discord server for gamers") is False


def test_normalize_name_strips_harakat_and_folds_alif() -> None:
    assert normalize_name("أَحْمَد") == "احمد"
    assert normalize_name("إسلام") == "اسلام"
    assert normalize_name("plain") == "plain"
