from __future__ import annotations

import discord


def member_is_admin(member) -> bool:
    # DMs carry a plain User without guild permissions.
    if not isinstance(member, discord.Member):
        return False
    perms = getattr(member, "guild_permissions", None)
    return bool(perms and perms.administrator)


def message_is_from_self(message: discord.Message, self_user_id: int | None) -> bool:
    if self_user_id is None:
        return False
    return int(getattr(message.author, "id", 0) or 0) == int(self_user_id)


def reaction_is_actionable(payload, self_user_id: int | None) -> bool:
    """Guild reactions by real members only; the bot's own affordances are skipped."""
    if getattr(payload, "guild_id", None) is None:
        return False
    if self_user_id is not None and int(payload.user_id) == int(self_user_id):
        return False
    member = getattr(payload, "member", None)
    if member is not None and getattr(member, "bot", False):
        return False
    return True
