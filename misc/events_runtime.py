from __future__ import annotations

import asyncio

import discord
from discord.ext import commands

from misc.discord_gates import message_is_from_self
from misc.discord_gates import reaction_is_actionable
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps


PLAIN_REPLIES = {
    "ping": "Pong!",
    "pong": "Ping!",
}


def register_runtime_events(
    bot: commands.Bot,
    *,
    deps: RuntimeDeps,
    boot: RuntimeBootDeps,
) -> None:
    orchestrator = deps.orchestrator

    @bot.event
    async def on_ready():
        print(f"Rollcall is online as {bot.user} guilds={len(bot.guilds)}")
        await orchestrator.on_ready(int(bot.user.id), orchestrator.lifecycle.platform.guild_ids())

        if boot.attendance_enabled and not getattr(bot, "_attendance_task", None):
            bot._attendance_task = asyncio.create_task(boot.attendance_loop_func())
            print("[Orchestrator] attendance loop started")

    @bot.event
    async def on_guild_join(guild: discord.Guild):
        orchestrator.add_guild(int(guild.id))
        try:
            await orchestrator.prepare_guild(int(guild.id))
        except Exception as e:
            print(f"[Orchestrator] guild join setup failed guild={guild.id}: {e}")

    @bot.event
    async def on_message(message: discord.Message):
        if message.author.bot or message_is_from_self(message, orchestrator.self_user_id):
            return

        content = (message.content or "").strip()
        reply = PLAIN_REPLIES.get(content)
        if reply:
            await message.channel.send(reply)
            return

        if content.startswith("!"):
            await bot.process_commands(message)

    @bot.event
    async def on_raw_reaction_add(payload: discord.RawReactionActionEvent):
        if not reaction_is_actionable(payload, orchestrator.self_user_id):
            return
        member = getattr(payload, "member", None)
        await orchestrator.handle_reaction(
            guild_id=payload.guild_id,
            message_id=payload.message_id,
            member_id=payload.user_id,
            symbol=str(payload.emoji),
            display_name=getattr(member, "display_name", None),
        )
