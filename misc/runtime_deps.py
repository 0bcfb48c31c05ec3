from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class RuntimeDeps:
    orchestrator: Any


@dataclass(frozen=True)
class RuntimeBootDeps:
    attendance_enabled: bool
    attendance_loop_func: Callable
