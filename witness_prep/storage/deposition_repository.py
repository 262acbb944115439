"""
Deposition Session Repository
=============================

Deposition sessions: documents, analysis results, questions and the outline.

Outline sections always carry dense 0..n-1 `order` values. Section mutators
return None when the session has no outline or the section does not exist.
"""

import logging
from typing import Dict, List, Optional, Sequence

from ..schemas import (
    Contradiction,
    DepositionAnalysis,
    DepositionOutline,
    DepositionQuestion,
    DepositionSession,
    DepositionStatus,
    OutlineSection,
    TestimonyGap,
    merge_fields,
)
from .repository import SessionRepository

logger = logging.getLogger(__name__)

DEPOSITION_STORAGE_KEY = "wtp_deposition_sessions_v1"


def _renumber(sections: List[OutlineSection]) -> List[OutlineSection]:
    for index, section in enumerate(sections):
        section.order = index
    return sections


def _ordered(sections: List[OutlineSection]) -> List[OutlineSection]:
    return sorted(sections, key=lambda s: s.order)


class DepositionRepository(SessionRepository[DepositionSession]):
    storage_key = DEPOSITION_STORAGE_KEY
    model = DepositionSession
    ready_status = DepositionStatus.READY

    def create(
        self,
        deponent_name: str,
        case_name: str,
        case_number: Optional[str] = None,
        deposition_date: Optional[str] = None,
    ) -> DepositionSession:
        session = DepositionSession(
            deponent_name=deponent_name,
            case_name=case_name,
            case_number=case_number,
            deposition_date=deposition_date,
            created_at=self.clock(),
        )
        self._insert(session)
        logger.info(f"Created deposition session {session.id}")
        return session

    def set_analysis_results(
        self,
        session_id: str,
        gaps: Sequence[TestimonyGap],
        contradictions: Sequence[Contradiction],
        analysis: Optional[DepositionAnalysis] = None,
    ) -> Optional[DepositionSession]:
        def change(session: DepositionSession) -> DepositionSession:
            session.gaps = list(gaps)
            session.contradictions = list(contradictions)
            if analysis is not None:
                session.analysis = analysis
            return session

        return self._mutate(session_id, change)

    # =========================================================================
    # Outline
    # =========================================================================

    def _with_outline(self, session_id: str, change) -> Optional[DepositionSession]:
        """Run change(session, outline) and stamp updated_at if it succeeded"""
        def wrapped(session: DepositionSession) -> Optional[DepositionSession]:
            if session.outline is None:
                logger.debug(f"Session {session_id} has no outline")
                return None
            if not change(session, session.outline):
                return None
            session.outline.updated_at = self.clock()
            return session

        return self._mutate(session_id, wrapped)

    def create_outline(
        self,
        session_id: str,
        title: str,
        sections: Optional[Sequence[OutlineSection]] = None,
    ) -> Optional[DepositionSession]:
        """Create (or replace) the session outline"""
        def change(session: DepositionSession) -> DepositionSession:
            now = self.clock()
            session.outline = DepositionOutline(
                title=title,
                sections=_renumber(list(sections or [])),
                created_at=now,
                updated_at=now,
            )
            return session

        return self._mutate(session_id, change)

    def add_outline_section(
        self,
        session_id: str,
        title: str,
        questions: Optional[Sequence[DepositionQuestion]] = None,
        notes: Optional[str] = None,
        estimated_time: Optional[int] = None,
    ) -> Optional[DepositionSession]:
        def change(session, outline: DepositionOutline) -> bool:
            outline.sections = _ordered(outline.sections)
            outline.sections.append(OutlineSection(
                title=title,
                order=len(outline.sections),
                questions=list(questions or []),
                notes=notes,
                estimated_time=estimated_time,
            ))
            _renumber(outline.sections)
            return True

        return self._with_outline(session_id, change)

    def update_outline_section(self, session_id: str, section_id: str, updates: Dict) -> Optional[DepositionSession]:
        """Shallow-merge section fields; id and order are managed here and ignored"""
        fields = {k: v for k, v in updates.items() if k not in ("id", "order")}

        def change(session, outline: DepositionOutline) -> bool:
            for index, section in enumerate(outline.sections):
                if section.id == section_id:
                    outline.sections[index] = merge_fields(section, fields)
                    return True
            return False

        return self._with_outline(session_id, change)

    def remove_outline_section(self, session_id: str, section_id: str) -> Optional[DepositionSession]:
        def change(session, outline: DepositionOutline) -> bool:
            remaining = [s for s in _ordered(outline.sections) if s.id != section_id]
            if len(remaining) == len(outline.sections):
                return False
            outline.sections = _renumber(remaining)
            return True

        return self._with_outline(session_id, change)

    def reorder_outline_sections(self, session_id: str, section_ids: Sequence[str]) -> Optional[DepositionSession]:
        """
        Put sections in the given order and renumber them 0..n-1.

        Unknown ids are skipped and repeated ids count once. Sections missing
        from section_ids follow the listed ones in their previous order.
        """
        def change(session, outline: DepositionOutline) -> bool:
            by_id = {s.id: s for s in outline.sections}
            reordered = []
            seen = set()
            for section_id in section_ids:
                if section_id in by_id and section_id not in seen:
                    reordered.append(by_id[section_id])
                    seen.add(section_id)
                elif section_id not in by_id:
                    logger.warning(f"Ignoring unknown outline section {section_id}")
            reordered.extend(s for s in _ordered(outline.sections) if s.id not in seen)
            outline.sections = _renumber(reordered)
            return True

        return self._with_outline(session_id, change)

    def add_question_to_section(
        self,
        session_id: str,
        section_id: str,
        question: DepositionQuestion,
    ) -> Optional[DepositionSession]:
        def change(session, outline: DepositionOutline) -> bool:
            for section in outline.sections:
                if section.id == section_id:
                    if any(q.id == question.id for q in section.questions):
                        raise ValueError(f"Question id {question.id} already in section {section_id}")
                    section.questions.append(question)
                    return True
            return False

        return self._with_outline(session_id, change)

    def remove_question_from_section(
        self,
        session_id: str,
        section_id: str,
        question_id: str,
    ) -> Optional[DepositionSession]:
        def change(session, outline: DepositionOutline) -> bool:
            for section in outline.sections:
                if section.id == section_id:
                    remaining = [q for q in section.questions if q.id != question_id]
                    if len(remaining) == len(section.questions):
                        return False
                    section.questions = remaining
                    return True
            return False

        return self._with_outline(session_id, change)
