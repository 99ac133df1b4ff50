from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .schemas import AnswerIn, AnswerResult, Question, Submission
from .store import PassageStore

logger = logging.getLogger(__name__)

NO_SELECTION = -1


def _selection(value: Any) -> int:
    # bool is an int subclass; a "true" answer is not a choice index
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return NO_SELECTION
    return value


def score_for(correct: int, total: int) -> int:
    """Percentage rounded half up, 0 for an empty test."""
    denominator = max(1, total)
    return (200 * correct + denominator) // (2 * denominator)


def grade(questions: Iterable[Question], selections: Mapping[str, Any]) -> Tuple[List[AnswerResult], int]:
    answers: List[AnswerResult] = []
    for q in questions:
        selected = _selection(selections.get(q.id))
        answers.append(
            AnswerResult(
                q_id=q.id,
                prompt=q.prompt,
                selected_index=selected,
                correct_index=q.correct_index,
                correct=selected != NO_SELECTION and selected == q.correct_index,
            )
        )
    correct = sum(1 for a in answers if a.correct)
    return answers, score_for(correct, len(answers))


def selections_from(answers: Iterable[AnswerIn]) -> Dict[str, Optional[int]]:
    # Later entries for the same question win
    return {a.q_id: a.selected_index for a in answers}


async def submit_answers(
    store: PassageStore,
    test_id: str,
    answers: Iterable[AnswerIn],
    user_id: Optional[str] = None,
) -> Submission:
    test = await store.get(test_id)
    results, score = grade(test.questions, selections_from(answers))
    submission = Submission(
        id=f"sub_{uuid.uuid4().hex[:12]}",
        timestamp=datetime.now(timezone.utc),
        user_id=user_id,
        score=score,
        answers=results,
    )
    await store.append_submission(test_id, submission)
    logger.info("Graded submission %s for test %s: %d%%", submission.id, test_id, score)
    return submission
