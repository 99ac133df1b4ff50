from __future__ import annotations

import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from fastapi.concurrency import run_in_threadpool

from .errors import NotFound, StorageError
from .models import KnowledgeTest
from .schemas import Question, Submission, Test, TestSummary

logger = logging.getLogger(__name__)


def new_test_id() -> str:
    return f"test_{uuid.uuid4().hex[:12]}"


def _to_db_time(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db_time(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _dump_list(items) -> str:
    return json.dumps([i.model_dump(mode="json", by_alias=True) for i in items], ensure_ascii=False)


def _row_to_test(row: KnowledgeTest) -> Test:
    return Test(
        id=row.id,
        name=row.name,
        created_at=_from_db_time(row.created_at),
        source_text=row.source_text,
        questions=[Question.model_validate(q) for q in json.loads(row.questions_json or "[]")],
        results=[Submission.model_validate(s) for s in json.loads(row.results_json or "[]")],
    )


class PassageStore:
    """Durable knowledge tests, one row per test.

    ``questions`` and ``results`` are whole JSON documents rewritten on every
    change. All mutation of an existing test goes through :meth:`update`,
    which holds a per-test lock for the full read-modify-write so concurrent
    submissions to the same test are never lost within one process. Across
    processes that relies on the row lock from ``with_for_update``, which
    SQLite does not provide: run a single worker on SQLite.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, test_id: str) -> asyncio.Lock:
        lock = self._locks.get(test_id)
        if lock is None:
            lock = self._locks[test_id] = asyncio.Lock()
        return lock

    async def create(self, test: Test) -> str:
        if not test.id:
            test = test.model_copy(update={"id": new_test_id()})
        await run_in_threadpool(self._create_sync, test)
        logger.info("Stored test %s with %d questions", test.id, len(test.questions))
        return test.id

    async def get(self, test_id: str) -> Test:
        return await run_in_threadpool(self._get_sync, test_id)

    async def list(self) -> List[TestSummary]:
        return await run_in_threadpool(self._list_sync)

    async def update(self, test_id: str, transform: Callable[[Test], Optional[Test]]) -> Test:
        """Apply ``transform`` to the stored test and write the result back atomically.

        ``transform`` may mutate the test in place and return None, or return a
        replacement. Only ``results`` is written back: the passage and question
        set are immutable.
        """
        async with self._lock_for(test_id):
            return await run_in_threadpool(self._update_sync, test_id, transform)

    async def append_submission(self, test_id: str, submission: Submission) -> Test:
        def _append(test: Test) -> None:
            test.results.append(submission)

        return await self.update(test_id, _append)

    # Blocking halves, run in the threadpool

    def _create_sync(self, test: Test) -> None:
        row = KnowledgeTest(
            id=test.id,
            name=test.name,
            created_at=_to_db_time(test.created_at),
            source_text=test.source_text,
            question_count=len(test.questions),
            questions_json=_dump_list(test.questions),
            results_json=_dump_list(test.results),
        )
        try:
            with self._session_factory() as db:
                db.add(row)
                db.commit()
        except SQLAlchemyError as err:
            logger.error("Could not store test %s: %s", test.id, err)
            raise StorageError("Could not store test") from err

    def _get_sync(self, test_id: str) -> Test:
        try:
            with self._session_factory() as db:
                row = db.get(KnowledgeTest, test_id)
                if row is None:
                    raise NotFound(f"Test {test_id} not found")
                return _row_to_test(row)
        except SQLAlchemyError as err:
            logger.error("Could not read test %s: %s", test_id, err)
            raise StorageError("Could not read test") from err

    def _list_sync(self) -> List[TestSummary]:
        stmt = select(
            KnowledgeTest.id,
            KnowledgeTest.name,
            KnowledgeTest.created_at,
            KnowledgeTest.question_count,
        ).order_by(KnowledgeTest.created_at, KnowledgeTest.id)
        try:
            with self._session_factory() as db:
                return [
                    TestSummary(
                        id=r.id,
                        name=r.name,
                        created_at=_from_db_time(r.created_at),
                        question_count=r.question_count,
                    )
                    for r in db.execute(stmt)
                ]
        except SQLAlchemyError as err:
            logger.error("Could not list tests: %s", err)
            raise StorageError("Could not read tests") from err

    def _update_sync(self, test_id: str, transform: Callable[[Test], Optional[Test]]) -> Test:
        # Closing the session without a commit rolls the transaction back
        try:
            with self._session_factory() as db:
                stmt = select(KnowledgeTest).where(KnowledgeTest.id == test_id).with_for_update()
                row = db.execute(stmt).scalar_one_or_none()
                if row is None:
                    raise NotFound(f"Test {test_id} not found")
                test = _row_to_test(row)
                updated = transform(test)
                if updated is None:
                    updated = test
                row.results_json = _dump_list(updated.results)
                db.commit()
                return updated
        except SQLAlchemyError as err:
            logger.error("Could not update test %s: %s", test_id, err)
            raise StorageError("Could not update test") from err
