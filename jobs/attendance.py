from __future__ import annotations

import asyncio


MIN_TICK_SECONDS = 5


async def attendance_loop(
    *,
    orchestrator,
    interval_seconds: int = 60,
) -> None:
    # run_tick completes before the next sleep starts, so ticks never overlap.
    while True:
        try:
            await orchestrator.run_tick()
        except Exception as e:
            print(f"[Orchestrator] loop error: {e}")
        await asyncio.sleep(max(MIN_TICK_SECONDS, int(interval_seconds)))
