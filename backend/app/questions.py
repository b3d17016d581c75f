"""Question bank loading from a CSV file, with a polling watcher for edits.

Expected header::

    question,type,option1,option2,option3,option4,correct,time_limit

``correct`` is the 1-based index of the right option. Blank options are
dropped, so a true/false row just leaves ``option3`` and ``option4`` empty.
"""

from __future__ import annotations

import asyncio
import csv
import logging
import re
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from .models import Question

logger = logging.getLogger(__name__)

DEFAULT_TIME_LIMIT = 20
OPTION_COLUMNS = ("option1", "option2", "option3", "option4")
QUESTION_KINDS = ("multiple-choice", "true-false")

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")

OnReload = Callable[[Sequence[Question]], Awaitable[None]]


def _leading_int(value: Optional[str]) -> Optional[int]:
    match = _LEADING_INT_RE.match(value or "")
    return int(match.group(1)) if match else None


def parse_question(row: Dict[str, str], default_time_limit: int = DEFAULT_TIME_LIMIT) -> Optional[Question]:
    """Build a Question from one CSV record, or None if it has too few options."""

    options = [row.get(col, "") for col in OPTION_COLUMNS]
    options = [o for o in options if o]
    if len(options) < 2:
        return None

    kind = row.get("type", "").lower()
    if kind not in QUESTION_KINDS:
        kind = "true-false" if len(options) == 2 else "multiple-choice"

    time_limit = _leading_int(row.get("time_limit"))
    if time_limit is None or time_limit <= 0:
        time_limit = default_time_limit

    correct = _leading_int(row.get("correct"))
    return Question(
        text=row.get("question", ""),
        kind=kind,
        options=options,
        correct_index=correct if correct is not None else 0,
        time_limit=time_limit,
    )


def load_questions(path: Path, default_time_limit: int = DEFAULT_TIME_LIMIT) -> List[Question]:
    questions: List[Question] = []
    with open(path, newline="", encoding="utf-8-sig") as fh:
        reader = csv.DictReader(fh)
        for line_no, raw in enumerate(reader, start=2):
            # Extra trailing cells land under the None key
            row = {k.strip(): (v or "").strip() for k, v in raw.items() if isinstance(k, str)}
            if not any(row.values()):
                continue
            q = parse_question(row, default_time_limit)
            if q is None:
                logger.warning("Skipping %s line %d: a question needs at least 2 options", path, line_no)
                continue
            questions.append(q)
    return questions


class QuestionSource:
    """Holds the last good question bank read from ``path``."""

    def __init__(self, path: str | Path, default_time_limit: int = DEFAULT_TIME_LIMIT):
        self.path = Path(path)
        self.default_time_limit = default_time_limit
        self._questions: List[Question] = []
        self._mtime: Optional[float] = None
        self._watch_task: Optional[asyncio.Task] = None

    def snapshot(self) -> List[Question]:
        return list(self._questions)

    def load(self) -> List[Question]:
        """Read the file, replacing the held bank. Raises if it is missing or unreadable."""

        if not self.path.is_file():
            raise FileNotFoundError(f"Question file not found: {self.path}")
        mtime = self.path.stat().st_mtime
        self._questions = load_questions(self.path, self.default_time_limit)
        self._mtime = mtime
        logger.info("Loaded %d questions from %s", len(self._questions), self.path)
        return self.snapshot()

    def refresh(self) -> List[Question]:
        """Reload if possible, otherwise keep serving the previous bank."""

        try:
            return self.load()
        except (OSError, ValueError, csv.Error) as exc:
            logger.warning(
                "Failed to reload %s, keeping previous %d questions: %s",
                self.path,
                len(self._questions),
                exc,
            )
            return self.snapshot()

    async def watch(self, on_reload: OnReload, poll_interval: float = 1.0) -> None:
        while True:
            await asyncio.sleep(poll_interval)
            try:
                mtime = self.path.stat().st_mtime
            except OSError:
                continue
            if mtime == self._mtime:
                continue
            try:
                self.load()
            except (OSError, ValueError, csv.Error) as exc:
                # Don't retry the same broken revision every poll
                self._mtime = mtime
                logger.warning("Failed to reload %s, keeping previous %d questions: %s", self.path, len(self._questions), exc)
                continue
            logger.info("%s changed, reloaded %d questions", self.path, len(self._questions))
            try:
                await on_reload(self.snapshot())
            except Exception:
                logger.exception("Question reload callback failed")

    def start_watching(self, on_reload: OnReload, poll_interval: float = 1.0) -> None:
        self.stop_watching()
        self._watch_task = asyncio.create_task(self.watch(on_reload, poll_interval))

    def stop_watching(self) -> None:
        if self._watch_task is not None:
            self._watch_task.cancel()
            self._watch_task = None
