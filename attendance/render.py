from __future__ import annotations

import re
from datetime import datetime

from attendance.models import Answer
from attendance.models import AnswerChoice
from attendance.models import Event
from attendance.models import REACTION_SYMBOLS
from misc.discord_timestamps import format_discord_timestamp


DISCORD_MAX_MESSAGE_LEN = 1900  # keep under 2000 hard limit

_SYMBOL_ALT = "|".join(re.escape(s) for s in REACTION_SYMBOLS)
ANSWER_LINE_RE = re.compile(rf"^({_SYMBOL_ALT}) (.+) \((<t:\d+:f>)\)$")


def _reaction_hint() -> str:
    parts = [f"{symbol} {choice.value}" for symbol, choice in REACTION_SYMBOLS.items()]
    return "React with " + " / ".join(parts) + "."


def format_answer_line(answer: Answer) -> str:
    name = (answer.display_name or "").strip() or f"member {answer.member_id}"
    return f"{answer.symbol} {name} ({format_discord_timestamp(answer.updated_at, 'f')})"


def render_event_message(event: Event, answers: list[Answer]) -> str:
    """Full announcement body; answers are listed in the order given, never re-sorted."""
    lines = [
        f"**{event.name}**",
        f"{format_discord_timestamp(event.start_at, 'F')} -> {format_discord_timestamp(event.end_at, 't')}",
    ]
    if event.description:
        lines.append(event.description)
    if event.location:
        lines.append(f"Location: {event.location}")
    lines.append("")
    if not answers:
        lines.append(_reaction_hint())
        return "\n".join(lines)[:DISCORD_MAX_MESSAGE_LEN]

    head = "\n".join(lines)
    return "\n".join([head, *_fit_answer_lines(answers, DISCORD_MAX_MESSAGE_LEN - len(head))])[:DISCORD_MAX_MESSAGE_LEN]


def _fit_answer_lines(answers: list[Answer], budget: int) -> list[str]:
    """Whole answer lines that fit in budget; the rest collapse into one "... and N more" line."""
    out: list[str] = []
    used = 0
    for idx, answer in enumerate(answers):
        line = format_answer_line(answer)
        left_after = len(answers) - idx - 1
        reserve = len(f"\n... and {left_after} more") if left_after else 0
        if used + 1 + len(line) + reserve > budget:
            out.append(f"... and {len(answers) - idx} more")
            break
        out.append(line)
        used += 1 + len(line)
    return out


def parse_answer_lines(text: str) -> list[tuple[str, str]]:
    out: list[tuple[str, str]] = []
    for line in (text or "").splitlines():
        m = ANSWER_LINE_RE.match(line.strip())
        if m:
            out.append((m.group(2), m.group(1)))
    return out


def render_week_summary(
    events: list[Event],
    answers_by_event: dict[int, list[Answer]],
    *,
    eligible_members: int,
    window_start: datetime,
) -> str:
    lines = [f"**Weekly attendance** since {format_discord_timestamp(window_start, 'D')}"]
    if not events:
        lines.append("No events this week.")
        return "\n".join(lines)

    for event in events:
        yes = [a for a in answers_by_event.get(event.id, []) if a.choice is AnswerChoice.YES]
        total = max(int(eligible_members), len(yes))
        names = ", ".join((a.display_name or "").strip() or f"member {a.member_id}" for a in yes)
        lines.append(
            f"- {event.name} ({format_discord_timestamp(event.start_at, 'f')}): "
            f"{len(yes)}/{total} yes" + (f" - {names}" if names else "")
        )
    return "\n".join(lines)


def chunk_text(text: str, limit: int = DISCORD_MAX_MESSAGE_LEN) -> list[str]:
    text = text or ""
    if len(text) <= limit:
        return [text]

    chunks = []
    remaining = text
    while len(remaining) > limit:
        # Prefer splitting on paragraph, then newline, then space
        split_at = remaining.rfind("\n\n", 0, limit)
        if split_at == -1:
            split_at = remaining.rfind("\n", 0, limit)
        if split_at == -1:
            split_at = remaining.rfind(" ", 0, limit)
        if split_at == -1:
            split_at = limit

        chunk = remaining[:split_at].strip()
        if chunk:
            chunks.append(chunk)
        remaining = remaining[split_at:].strip()

    if remaining:
        chunks.append(remaining)
    return chunks
