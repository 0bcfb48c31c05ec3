from __future__ import annotations

import os
import re
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Any

import yaml

from attendance.models import FixedTrainingTime
from misc.discord_timestamps import validate_weekday


WEEKDAY_KEYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass(slots=True)
class TemplateConfig:
    timezone: str | None = None
    channel_name: str | None = None
    training_times: list[FixedTrainingTime] = field(default_factory=list)


def parse_hhmm(value: str) -> tuple[int, int]:
    v = (str(value) if value is not None else "").strip()
    m = re.fullmatch(r"([01]?\d|2[0-3]):([0-5]\d)", v)
    if not m:
        raise ValueError(f"Invalid HH:MM time: {value}")
    return int(m.group(1)), int(m.group(2))


def _parse_weekday(value: Any) -> int:
    if isinstance(value, str) and not value.strip().isdigit():
        key = value.strip().lower()
        if key not in WEEKDAY_KEYS:
            raise ValueError(f"Invalid weekday: {value}")
        return WEEKDAY_KEYS.index(key)
    return validate_weekday(value)


def parse_training_time(raw: dict[str, Any]) -> FixedTrainingTime:
    name = str(raw.get("name") or "").strip()
    if not name:
        raise ValueError("training time needs a name")
    start_h, start_m = parse_hhmm(raw.get("start"))
    end_h, end_m = parse_hhmm(raw.get("end"))
    return FixedTrainingTime(
        weekday=_parse_weekday(raw.get("weekday")),
        start_hour=start_h,
        start_minute=start_m,
        end_hour=end_h,
        end_minute=end_m,
        name=name,
        description=str(raw.get("description") or "").strip(),
        location=str(raw.get("location") or "").strip(),
    )


def normalize_templates(raw: dict[str, Any]) -> TemplateConfig:
    entries = raw.get("training_times") if isinstance(raw.get("training_times"), list) else []
    times: list[FixedTrainingTime] = []
    for idx, entry in enumerate(entries):
        if not isinstance(entry, dict):
            print(f"[Templates] skipping entry #{idx}: not a mapping")
            continue
        try:
            times.append(parse_training_time(entry))
        except (TypeError, ValueError) as e:
            print(f"[Templates] skipping entry #{idx}: {e}")
    return TemplateConfig(
        timezone=str(raw.get("timezone") or "").strip() or None,
        channel_name=str(raw.get("channel_name") or "").strip() or None,
        training_times=times,
    )


class TemplateStore:
    """FixedTrainingTime templates loaded from YAML and reloaded when the file changes."""

    def __init__(self, path: str) -> None:
        self.path = str(path)
        self._cache: TemplateConfig | None = None
        self._mtime: float | None = None

    def _read(self) -> dict[str, Any]:
        raw = yaml.safe_load(Path(self.path).read_text(encoding="utf-8")) or {}
        if not isinstance(raw, dict):
            raise RuntimeError("Training times file must contain a top-level mapping")
        return raw

    def config(self, force_reload: bool = False) -> TemplateConfig:
        path = Path(self.path)
        if not path.exists():
            if self._cache is None or self._mtime is not None:
                print(f"[Templates] file not found: {self.path}; no recurring events")
            self._cache, self._mtime = TemplateConfig(), None
            return self._cache

        mtime = path.stat().st_mtime
        if not force_reload and self._cache is not None and mtime == self._mtime:
            return self._cache

        data = normalize_templates(self._read())
        print(f"[Templates] loaded {len(data.training_times)} training times from {self.path}")
        self._cache, self._mtime = data, mtime
        return data

    def training_times(self) -> list[FixedTrainingTime]:
        return list(self.config().training_times)


def default_templates_path() -> str:
    # This resolves to repo-root/config when running from source checkout.
    here = Path(__file__).resolve().parents[1]
    return os.path.join(here, "config", "training_times.yml")
