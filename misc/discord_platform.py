from __future__ import annotations

import discord

from attendance.models import ChannelRef


class DiscordPlatform:
    """Narrow outbound surface the attendance core needs from Discord.

    Every method may raise; callers log and move on. Timeouts are discord.py's own.
    """

    def __init__(self, bot) -> None:
        self.bot = bot

    async def _channel(self, channel_id: int):
        ch = self.bot.get_channel(int(channel_id))
        if ch is not None:
            return ch
        return await self.bot.fetch_channel(int(channel_id))

    async def _guild(self, guild_id: int) -> discord.Guild:
        guild = self.bot.get_guild(int(guild_id))
        if guild is not None:
            return guild
        return await self.bot.fetch_guild(int(guild_id))

    async def _message(self, channel_id: int, message_id: int) -> discord.Message:
        channel = await self._channel(channel_id)
        return await channel.fetch_message(int(message_id))

    def guild_ids(self) -> list[int]:
        return [int(g.id) for g in self.bot.guilds]

    async def send_message(self, channel_id: int, text: str) -> int:
        channel = await self._channel(channel_id)
        msg = await channel.send(text)
        return int(msg.id)

    async def edit_message(self, channel_id: int, message_id: int, text: str) -> None:
        channel = await self._channel(channel_id)
        # Partial message: one REST call, no fetch of the current body.
        await channel.get_partial_message(int(message_id)).edit(content=text)

    async def add_reaction(self, channel_id: int, message_id: int, symbol: str) -> None:
        channel = await self._channel(channel_id)
        await channel.get_partial_message(int(message_id)).add_reaction(symbol)

    async def list_reaction_users(self, channel_id: int, message_id: int, symbol: str) -> list[int]:
        msg = await self._message(channel_id, message_id)
        for reaction in msg.reactions:
            if str(reaction.emoji) == symbol:
                return [int(u.id) async for u in reaction.users()]
        return []

    async def remove_user_reaction(self, channel_id: int, message_id: int, symbol: str, user_id: int) -> None:
        channel = await self._channel(channel_id)
        await channel.get_partial_message(int(message_id)).remove_reaction(symbol, discord.Object(id=int(user_id)))

    async def list_channels(self, guild_id: int) -> list[ChannelRef]:
        guild = await self._guild(guild_id)
        channels = guild.text_channels or [c for c in await guild.fetch_channels() if isinstance(c, discord.TextChannel)]
        return [ChannelRef(id=int(c.id), name=str(c.name)) for c in channels]

    async def create_channel(self, guild_id: int, name: str) -> ChannelRef:
        guild = await self._guild(guild_id)
        ch = await guild.create_text_channel(name, reason="Training announcements")
        return ChannelRef(id=int(ch.id), name=str(ch.name))

    async def resolve_user(self, guild_id: int, user_id: int) -> str:
        guild = await self._guild(guild_id)
        member = guild.get_member(int(user_id)) or await guild.fetch_member(int(user_id))
        return str(member.display_name)

    async def count_eligible_members(self, guild_id: int) -> int:
        guild = await self._guild(guild_id)
        return sum(1 for m in guild.members if not m.bot)
