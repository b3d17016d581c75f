"""Pure scoring helpers: per-question points, answer distribution, rankings."""

from __future__ import annotations

import math
from typing import Iterable, List

from .models import Player, Question
from .schemas import LeaderboardEntry

CORRECT_BASE_POINTS = 1000
MAX_TIME_BONUS = 1000


def award(player: Player, question: Question) -> int:
    """Points earned by ``player`` for their recorded answer to ``question``.

    A correct answer is worth the base points plus a bonus proportional to the
    countdown value captured when the answer was accepted. Wrong or missing
    answers earn nothing, and so does every answer when the question's
    correct index lies outside its options.
    """
    if player.answer is None or player.answer != question.correct_index:
        return 0
    if not 1 <= question.correct_index <= len(question.options):
        return 0

    remaining = player.answer_remaining or 0
    # Half-up rounding, so equal inputs never depend on banker's rounding
    bonus = math.floor(MAX_TIME_BONUS * remaining / question.time_limit + 0.5)
    return CORRECT_BASE_POINTS + bonus


def answer_distribution(players: Iterable[Player], question: Question) -> List[int]:
    counts = [0] * len(question.options)
    for p in players:
        if p.answer is not None and 1 <= p.answer <= len(counts):
            counts[p.answer - 1] += 1
    return counts


def rank_players(players: Iterable[Player]) -> List[LeaderboardEntry]:
    # sorted() is stable: ties keep join order
    ranked = sorted(players, key=lambda p: -p.score)
    return [LeaderboardEntry(name=p.name, score=p.score) for p in ranked]
