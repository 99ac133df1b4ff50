from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from .errors import EmptyGenerationError, GenerationParseError, GenerationUnavailable, InvalidArgument, NoSubmissionYet
from .extraction import extract_json, items_under
from .gemini_client import GeminiClient
from .schemas import Justification, Question, Test
from .store import PassageStore, new_test_id

logger = logging.getLogger(__name__)

QUESTION_MAX_TOKENS = 1000
# Roughly one compact four-choice question in JSON
TOKENS_PER_QUESTION = 150
JUSTIFY_MAX_TOKENS = 800


def _question_prompt(text: str, requested: int) -> str:
    return (
        "You are an expert teacher. Given the following passage, generate "
        f"{requested} multiple-choice questions (MCQs).\n"
        "Requirements:\n"
        "- Output ONLY valid JSON (no extra commentary).\n"
        '- JSON structure must be: { "questions": [ { "id": "q1", "prompt": "...", '
        '"choices": ["A", "B", "C", "D"], "correctIndex": 1 }, ... ] }\n'
        "- Each question should be concise, with 4 choices and exactly one correct.\n"
        "- correctIndex is the zero-based position of the correct choice.\n"
        "- Write the questions and choices in the same language as the passage.\n"
        "- Keep language simple for learners.\n"
        f'Passage:\n"""{text}"""\n'
        "Return the JSON only."
    )


def question_token_budget(requested: int) -> int:
    return max(QUESTION_MAX_TOKENS, TOKENS_PER_QUESTION * requested)


def _justify_prompt(questions: Sequence[Question], context_notes: str) -> str:
    blocks = "\n\n".join(
        f"QID:{q.id}\nQ:{q.prompt}\nChoices:{json.dumps(q.choices, ensure_ascii=False)}\nCorrectIndex:{q.correct_index}"
        for q in questions
    )
    return (
        "You are StudyAgent. For each question and its correct answer given below, write a short "
        "(1-2 paragraph) learner-friendly explanation of why the correct answer is correct, "
        "and a short tip to remember it. Answer in the same language as the questions.\n"
        "Return ONLY JSON:\n"
        '{\n  "justifications": [\n    { "qId": "...", "explanation": "..." }\n  ]\n}\n'
        f"Context (extract): {context_notes}\n\n"
        f"Questions:\n{blocks}\n"
    )


def _coerce_index(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return 0


def _first_text(item: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = item.get(key)
        if isinstance(value, (str, int, float)) and not isinstance(value, bool) and str(value).strip():
            return str(value).strip()
    return ""


def normalize_questions(items: List[Any], *, reject_out_of_range_index: bool = False) -> List[Question]:
    """Turn loosely-shaped model items into Questions.

    Accepts ``prompt``/``question`` and ``choices``/``options``. A missing or
    non-numeric ``correctIndex`` becomes 0. Ids are kept when unique,
    otherwise replaced.
    """
    questions: List[Question] = []
    seen: set = set()
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            continue
        prompt = _first_text(item, "prompt", "question")
        raw_choices = item.get("choices")
        if not isinstance(raw_choices, list):
            raw_choices = item.get("options")
        choices = [str(c).strip() for c in raw_choices if c is not None] if isinstance(raw_choices, list) else []
        if not prompt or not choices:
            continue
        correct_index = _coerce_index(item.get("correctIndex"))
        if reject_out_of_range_index and not 0 <= correct_index < len(choices):
            logger.warning("Dropping generated question %d: correctIndex %d outside %d choices", i, correct_index, len(choices))
            continue
        qid = _first_text(item, "id")
        if not qid or qid in seen:
            qid = f"q{i + 1}-{uuid.uuid4().hex[:8]}"
        seen.add(qid)
        questions.append(Question(id=qid, prompt=prompt, choices=choices, correct_index=correct_index))
    return questions


def normalize_justifications(items: List[Any], allowed_ids: Sequence[str]) -> List[Justification]:
    allowed = set(allowed_ids)
    out: List[Justification] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        qid = _first_text(item, "qId", "id", "questionId")
        explanation = _first_text(item, "explanation", "justification")
        if qid in allowed and explanation:
            out.append(Justification(q_id=qid, explanation=explanation))
    return out


def _require(client: Optional[GeminiClient]) -> None:
    if client is None:
        raise GenerationUnavailable("Gemini API key missing")


def _log_raw(what: str, raw: str) -> None:
    logger.error("Invalid %s JSON from model; raw output: %s", what, raw[:1000])


class QuestionGenerator:
    def __init__(
        self,
        client: Optional[GeminiClient],
        store: PassageStore,
        *,
        max_requested: int = 20,
        reject_out_of_range_index: bool = False,
    ) -> None:
        self.client = client
        self.store = store
        self.max_requested = max_requested
        self.reject_out_of_range_index = reject_out_of_range_index

    async def generate(self, source_text: str, requested: int = 6) -> List[Question]:
        if not source_text or not source_text.strip():
            raise InvalidArgument("text must not be empty")
        if requested < 1 or requested > self.max_requested:
            raise InvalidArgument(f"requested must be between 1 and {self.max_requested}")
        _require(self.client)
        raw = await self.client.generate(
            _question_prompt(source_text, requested),
            max_output_tokens=question_token_budget(requested),
        )
        try:
            items = items_under(extract_json(raw), "questions")
        except GenerationParseError:
            _log_raw("question", raw or "")
            raise
        questions = normalize_questions(items, reject_out_of_range_index=self.reject_out_of_range_index)
        if not questions:
            raise EmptyGenerationError("Model returned no usable questions")
        return questions

    async def create_test(self, name: str, source_text: str, requested: int = 6) -> Test:
        if not name or not name.strip():
            raise InvalidArgument("name and text required")
        questions = await self.generate(source_text, requested)
        test = Test(
            id=new_test_id(),
            name=name.strip(),
            created_at=datetime.now(timezone.utc),
            source_text=source_text,
            questions=questions,
            results=[],
        )
        await self.store.create(test)
        return test


class RemediationGenerator:
    def __init__(self, client: Optional[GeminiClient], store: PassageStore) -> None:
        self.client = client
        self.store = store

    async def justify(self, test_id: str, q_ids: Sequence[str], context_notes: Optional[str] = None) -> List[Justification]:
        if not q_ids:
            raise InvalidArgument("qIds required")
        test = await self.store.get(test_id)
        if not test.results:
            raise NoSubmissionYet("Test has no submissions yet")
        wanted = set(q_ids)
        questions = [q for q in test.questions if q.id in wanted]
        if not questions:
            raise InvalidArgument("None of the qIds belong to this test")
        _require(self.client)
        notes = context_notes if context_notes and context_notes.strip() else test.source_text
        raw = await self.client.generate(
            _justify_prompt(questions, notes),
            max_output_tokens=JUSTIFY_MAX_TOKENS,
        )
        try:
            items = items_under(extract_json(raw), "justifications")
        except GenerationParseError:
            _log_raw("justification", raw or "")
            raise
        justifications = normalize_justifications(items, [q.id for q in questions])
        if not justifications:
            raise EmptyGenerationError("Model returned no usable justifications")
        return justifications
