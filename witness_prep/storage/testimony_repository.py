"""
Testimony Session Repository
============================

Practice sessions for the testimony (cross-examination) tool.
"""

import logging
from typing import Optional

from ..schemas import PracticeExchange, PracticeSession, PracticeStatus
from .repository import SessionRepository

logger = logging.getLogger(__name__)

TESTIMONY_STORAGE_KEY = "wtp_testimony_sessions_v1"


class TestimonyRepository(SessionRepository[PracticeSession]):
    """
    Usage:
        repo = TestimonyRepository(SQLStorage())
        session = repo.create("Jane Doe", "Smith v. Jones")
        repo.set_questions(session.id, questions)
    """

    __test__ = False  # not a pytest class

    storage_key = TESTIMONY_STORAGE_KEY
    model = PracticeSession
    ready_status = PracticeStatus.READY

    def create(self, witness_name: str, case_name: str) -> PracticeSession:
        session = PracticeSession(
            witness_name=witness_name,
            case_name=case_name,
            created_at=self.clock(),
        )
        self._insert(session)
        logger.info(f"Created testimony session {session.id}")
        return session

    def add_practice_exchange(self, session_id: str, exchange: PracticeExchange) -> Optional[PracticeSession]:
        """Append one answered question; duration accumulates into total_duration"""
        def change(session: PracticeSession) -> PracticeSession:
            session.practice_history.append(exchange)
            session.total_duration += exchange.duration
            return session

        return self._mutate(session_id, change)
