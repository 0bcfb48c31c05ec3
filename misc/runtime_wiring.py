from __future__ import annotations

from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.commands.commands_events import register as register_events
from misc.events_runtime import register_runtime_events
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps


def wire_bot_runtime(
    bot,
    *,
    db_lock,
    db_conn,
    orchestrator,
    send_chunked,
    user_is_admin,
    attendance_enabled: bool,
    attendance_loop_func,
) -> None:
    register_events(
        bot,
        deps=CommandDeps(
            db_lock=db_lock,
            db_conn=db_conn,
            send_chunked=send_chunked,
            orchestrator=orchestrator,
        ),
        gates=CommandGates(user_is_admin=user_is_admin),
    )

    register_runtime_events(
        bot,
        deps=RuntimeDeps(
            orchestrator=orchestrator,
        ),
        boot=RuntimeBootDeps(
            attendance_enabled=attendance_enabled,
            attendance_loop_func=attendance_loop_func,
        ),
    )
