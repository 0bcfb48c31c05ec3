from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from enum import Enum


class AnswerChoice(str, Enum):
    YES = "yes"
    NO = "no"
    MAYBE = "maybe"
    UNRECOGNIZED = "unrecognized"


# Order matters: affordances are attached to a new announcement in this order.
REACTION_SYMBOLS: dict[str, AnswerChoice] = {
    "✅": AnswerChoice.YES,
    "❌": AnswerChoice.NO,
    "❔": AnswerChoice.MAYBE,
}
CHOICE_SYMBOLS: dict[AnswerChoice, str] = {choice: symbol for symbol, choice in REACTION_SYMBOLS.items()}


def classify_reaction(symbol: str | None) -> AnswerChoice:
    return REACTION_SYMBOLS.get((symbol or "").strip(), AnswerChoice.UNRECOGNIZED)


def symbol_for_choice(choice: AnswerChoice | str) -> str:
    return CHOICE_SYMBOLS.get(AnswerChoice(choice), "")


@dataclass(frozen=True, slots=True)
class FixedTrainingTime:
    """Weekly template for a recurring training slot, in local wall-clock time."""

    weekday: int
    start_hour: int
    start_minute: int
    end_hour: int
    end_minute: int
    name: str
    description: str = ""
    location: str = ""


@dataclass(slots=True)
class GuildMetadata:
    id: int
    guild_id: int
    last_week_reset: datetime | None
    channel_name: str


@dataclass(slots=True)
class Member:
    id: int
    guild_id: int
    member_id: int
    display_name: str


@dataclass(slots=True)
class Answer:
    id: int
    event_id: int
    user_id: int
    choice: AnswerChoice
    updated_at: datetime
    member_id: int | None = None
    display_name: str = ""

    @property
    def symbol(self) -> str:
        return symbol_for_choice(self.choice)


@dataclass(slots=True)
class Event:
    id: int
    guild_id: int
    channel_id: int
    message_id: int
    name: str
    description: str
    location: str
    start_at: datetime
    end_at: datetime
    source: str = "template"
    answers: list[Answer] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ChannelRef:
    id: int
    name: str
