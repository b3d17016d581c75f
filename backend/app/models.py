from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

AnswerIndex = int  # 1-based

QuestionKind = Literal["multiple-choice", "true-false"]

# States: idle -> lobby -> question <-> reveal -> leaderboard, reset -> lobby from anywhere
Phase = Literal["idle", "lobby", "question", "reveal", "leaderboard"]


class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    kind: QuestionKind = "multiple-choice"
    options: List[str] = Field(min_length=2, max_length=4)
    # Not validated against options; an out-of-range index simply never matches
    correct_index: AnswerIndex
    time_limit: int = Field(default=20, gt=0)


class Player(BaseModel):
    id: str
    name: str
    score: int = 0
    answer: Optional[AnswerIndex] = None
    # Countdown value at the moment the answer was accepted
    answer_remaining: Optional[int] = None
    last_points: int = 0

    def clear_answer(self) -> None:
        self.answer = None
        self.answer_remaining = None
