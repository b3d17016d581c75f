import math
import re
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional

from .models import AnswerIndex

_INTEGER_RE = re.compile(r"^[+-]?\d+$")


# ---- Inbound (client -> server) ----

class Envelope(BaseModel):
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def _null_data(cls, value: Any) -> Any:
        return {} if value is None else value


class JoinIn(BaseModel):
    pin: Optional[str] = None
    name: Optional[str] = None

    @field_validator("pin", mode="before")
    @classmethod
    def _pin_as_text(cls, value: Any) -> Any:
        # Clients may send the code as a number
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class AnswerIn(BaseModel):
    answer: Optional[AnswerIndex] = None

    @field_validator("answer", mode="before")
    @classmethod
    def _coerce_index(cls, value: Any) -> Optional[int]:
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            return int(value) if math.isfinite(value) and value.is_integer() else None
        if isinstance(value, str) and _INTEGER_RE.match(value.strip()):
            return int(value.strip())
        return None


# ---- Outbound (server -> client) ----

class OutboundModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LobbyOut(OutboundModel):
    pin: Optional[str]
    players: List[str]


class JoinedOut(OutboundModel):
    name: str


class RosterOut(OutboundModel):
    """Sent to the host as ``player-joined`` / ``player-left``."""

    name: str
    count: int
    players: List[str]


class AnswerCountOut(OutboundModel):
    count: int
    total: int


class QuestionOut(OutboundModel):
    index: int
    total: int
    question: str
    type: str
    options: List[str]
    time_limit: int


class TimerOut(OutboundModel):
    remaining: int


class LeaderboardEntry(OutboundModel):
    name: str
    score: int


class ResultOut(OutboundModel):
    correct: int
    your_answer: Optional[int]
    points: int
    total_score: int
    is_last: bool


class ResultsOut(OutboundModel):
    correct: int
    distribution: List[int]
    options: List[str]
    leaderboard: List[LeaderboardEntry]
    is_last: bool


class LeaderboardOut(OutboundModel):
    leaderboard: List[LeaderboardEntry]


class ErrorOut(OutboundModel):
    message: str


class PublicSessionOut(BaseModel):
    phase: str
    players: List[str]
    question_index: int
    total_questions: int
    host_connected: bool
