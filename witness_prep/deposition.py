"""
Deposition Planning
===================

Deposition tool services:
- analyze_documents: gaps, contradictions, themes, timeline, witnesses, exhibits
- generate_deposition_questions: questions driven by the analysis and focus areas
- draft_outline / build_outline: group questions into an ordered outline
- upload_document: extract a file's text and attach it to the session

Each LLM item is validated on its own; rejected items are counted and
dropped. When nothing usable comes back the analysis is empty and questions
come from the fallback set.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from .config import DEFAULT_DEMO_LIMITS, DemoLimits, Settings, get_settings
from .documents import ingest_document
from .errors import MissingInputError, require_text
from .fallback import generate_fallback_deposition_questions
from .ingest import RemoteOCRClient, detect_mime_type
from .llm_client import ARRAY, OBJECT, LLMClient, get_llm_client, parse_json_response
from .prompts import (
    build_deposition_analysis_messages,
    build_deposition_question_messages,
    deposition_analysis_system_prompt,
    deposition_questions_system_prompt,
    estimate_tokens,
    format_document_context,
    per_document_char_budget,
)
from .schemas import (
    AnalysisResult,
    ContradictionDraft,
    DepositionAnalysis,
    DepositionDocument,
    DepositionDocumentType,
    DepositionOutline,
    DepositionQuestion,
    DepositionQuestionDraft,
    DepositionSession,
    DepositionStatus,
    OutlineSection,
    Priority,
    TestimonyGapDraft,
    TimelineEvent,
    validate_drafts,
)
from .storage import DepositionRepository, UsageTracker

logger = logging.getLogger(__name__)

MAX_ANALYSIS_TOKENS = 8000
MINUTES_PER_QUESTION = 2

_PRIORITY_RANK = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


@dataclass
class DepositionQuestionResult:
    questions: List[DepositionQuestion] = field(default_factory=list)
    tokens_used: int = 0
    used_fallback: bool = False
    rejected_items: int = 0
    error: Optional[str] = None


def _document_budget(
    system_prompt: str,
    documents: Sequence[Any],
    limits: DemoLimits,
    settings: Settings,
) -> Optional[int]:
    """Per-document character cap, or None when all text fits"""
    context_tokens = estimate_tokens(system_prompt + format_document_context(documents))
    if context_tokens + settings.reserved_output_tokens <= limits.tokens.per_request:
        return None
    return per_document_char_budget(
        system_prompt, len(documents), limits.tokens.per_request, settings.reserved_output_tokens
    )


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if isinstance(v, (str, int, float)) and str(v).strip()]


def _timeline(value: Any) -> List[TimelineEvent]:
    events = []
    for item in value if isinstance(value, list) else []:
        try:
            event = TimelineEvent.model_validate(item)
        except ValidationError:
            continue
        if event.event:
            events.append(event)
    return events


def _validate_inputs(deponent_name: str, case_name: str, documents: Sequence[Any]):
    deponent_name = require_text(deponent_name, "deponent_name", "Deponent name is required")
    case_name = require_text(case_name, "case_name", "Case name is required")
    if not documents:
        raise MissingInputError("At least one document is required", field="documents")
    return deponent_name, case_name


# =============================================================================
# Analysis
# =============================================================================

async def analyze_documents(
    deponent_name: str,
    case_name: str,
    documents: Sequence[Any],
    case_number: Optional[str] = None,
    client: Optional[LLMClient] = None,
    settings: Optional[Settings] = None,
    limits: DemoLimits = DEFAULT_DEMO_LIMITS,
) -> AnalysisResult:
    """
    Find testimony gaps and contradictions across the case documents.

    Raises:
        MissingInputError: deponent name, case name or documents missing
    """
    deponent_name, case_name = _validate_inputs(deponent_name, case_name, documents)
    settings = settings or get_settings()
    client = client or get_llm_client()

    budget = _document_budget(deposition_analysis_system_prompt(deponent_name), documents, limits, settings)
    messages = build_deposition_analysis_messages(
        deponent_name, case_name, documents, case_number=case_number, max_chars_per_doc=budget,
    )
    result = await client.chat(
        messages,
        model=settings.analysis_model,
        temperature=0.3,
        max_tokens=min(limits.tokens.per_request, MAX_ANALYSIS_TOKENS),
    )

    if not result.has_content:
        logger.warning(f"Deposition analysis failed: {result.error or 'empty completion'}")
        return AnalysisResult(used_fallback=True)

    data = parse_json_response(result.content, expect=OBJECT)
    if data is None:
        return AnalysisResult(tokens_used=result.total_tokens, used_fallback=True)

    gaps, rejected_gaps = validate_drafts(data.get("gaps"), TestimonyGapDraft)
    contradictions, rejected_contradictions = validate_drafts(data.get("contradictions"), ContradictionDraft)
    rejected = rejected_gaps + rejected_contradictions
    if rejected:
        logger.warning(f"Rejected {rejected} malformed analysis items")

    summary = DepositionAnalysis(
        key_themes=_string_list(data.get("keyThemes")),
        timeline_events=_timeline(data.get("timelineEvents")),
        witnesses=_string_list(data.get("witnesses")),
        key_exhibits=_string_list(data.get("keyExhibits")),
    )
    logger.info(f"Analysis found {len(gaps)} gaps and {len(contradictions)} contradictions")

    return AnalysisResult(
        gaps=[g.to_gap() for g in gaps],
        contradictions=[c.to_contradiction() for c in contradictions],
        summary=summary,
        tokens_used=result.total_tokens,
        rejected_items=rejected,
    )


# =============================================================================
# Questions
# =============================================================================

async def generate_deposition_questions(
    deponent_name: str,
    case_name: str,
    documents: Sequence[Any],
    gaps: Sequence[Any] = (),
    contradictions: Sequence[Any] = (),
    focus_areas: Sequence[str] = (),
    existing_questions: Sequence[str] = (),
    client: Optional[LLMClient] = None,
    settings: Optional[Settings] = None,
    limits: DemoLimits = DEFAULT_DEMO_LIMITS,
) -> DepositionQuestionResult:
    """
    Draft deposition questions; falls back to the fixed set if none validate.

    Raises:
        MissingInputError: deponent name, case name or documents missing
    """
    deponent_name, case_name = _validate_inputs(deponent_name, case_name, documents)
    settings = settings or get_settings()
    client = client or get_llm_client()

    budget = _document_budget(deposition_questions_system_prompt(deponent_name), documents, limits, settings)
    messages = build_deposition_question_messages(
        deponent_name,
        case_name,
        documents,
        gaps=gaps,
        contradictions=contradictions,
        focus_areas=focus_areas,
        existing_questions=existing_questions,
        max_chars_per_doc=budget,
    )
    result = await client.chat(
        messages,
        model=settings.question_model,
        temperature=0.7,
        max_tokens=min(limits.tokens.per_request, MAX_ANALYSIS_TOKENS),
    )

    if not result.has_content:
        logger.warning(f"Deposition question generation failed, using fallback: {result.error or 'empty completion'}")
        return DepositionQuestionResult(
            questions=generate_fallback_deposition_questions(deponent_name, documents),
            used_fallback=True,
            error=result.error or "Empty completion",
        )

    drafts, rejected = validate_drafts(parse_json_response(result.content, expect=ARRAY), DepositionQuestionDraft)
    if not drafts:
        logger.warning(f"No usable deposition questions ({rejected} rejected), using fallback")
        return DepositionQuestionResult(
            questions=generate_fallback_deposition_questions(deponent_name, documents),
            tokens_used=result.total_tokens,
            used_fallback=True,
            rejected_items=rejected,
        )

    return DepositionQuestionResult(
        questions=[d.to_question() for d in drafts],
        tokens_used=result.total_tokens,
        rejected_items=rejected,
    )


# =============================================================================
# Outline
# =============================================================================

def draft_outline(title: str, questions: Sequence[DepositionQuestion]) -> DepositionOutline:
    """
    Group questions into sections by topic.

    Sections follow the order in which topics first appear; inside a section
    questions are ordered high, medium, low priority (stable otherwise).
    """
    by_topic: Dict[str, List[DepositionQuestion]] = {}
    for question in questions:
        by_topic.setdefault(question.topic.strip() or "General", []).append(question)

    sections = []
    for order, (topic, items) in enumerate(by_topic.items()):
        items = sorted(items, key=lambda q: _PRIORITY_RANK[q.priority])
        sections.append(OutlineSection(
            title=topic,
            order=order,
            questions=items,
            estimated_time=math.ceil(len(items) * MINUTES_PER_QUESTION),
        ))
    return DepositionOutline(title=title, sections=sections)


def build_outline(
    repo: DepositionRepository,
    session_id: str,
    title: Optional[str] = None,
) -> Optional[DepositionSession]:
    """Draft an outline from the session's questions and store it"""
    session = repo.get(session_id)
    if session is None:
        return None
    outline = draft_outline(title or f"Deposition of {session.deponent_name}", session.questions)
    return repo.create_outline(session_id, outline.title, outline.sections)


# =============================================================================
# Session flows
# =============================================================================

def _usable_documents(session: DepositionSession) -> List[DepositionDocument]:
    documents = [d for d in session.documents if d.content]
    if not documents:
        raise MissingInputError("Upload at least one document with text first", field="documents")
    return documents


async def analyze_session(
    repo: DepositionRepository,
    session_id: str,
    client: Optional[LLMClient] = None,
    settings: Optional[Settings] = None,
    limits: DemoLimits = DEFAULT_DEMO_LIMITS,
    tracker: Optional[UsageTracker] = None,
    usage_session_id: Optional[str] = None,
) -> Optional[AnalysisResult]:
    """Analyze a stored session's documents and store the results on it"""
    session = repo.get(session_id)
    if session is None:
        return None
    documents = _usable_documents(session)

    if session.status in (DepositionStatus.SETUP, DepositionStatus.UPLOADING):
        repo.update(session_id, {"status": DepositionStatus.ANALYZING})

    result = await analyze_documents(
        session.deponent_name, session.case_name, documents,
        case_number=session.case_number, client=client, settings=settings, limits=limits,
    )
    repo.set_analysis_results(session_id, result.gaps, result.contradictions, result.summary)

    if tracker is not None and usage_session_id and result.tokens_used:
        tracker.record_tokens(result.tokens_used, usage_session_id)
    return result


async def generate_session_questions(
    repo: DepositionRepository,
    session_id: str,
    focus_areas: Sequence[str] = (),
    client: Optional[LLMClient] = None,
    settings: Optional[Settings] = None,
    limits: DemoLimits = DEFAULT_DEMO_LIMITS,
    tracker: Optional[UsageTracker] = None,
    usage_session_id: Optional[str] = None,
) -> Optional[DepositionQuestionResult]:
    """
    Generate questions from the stored analysis and append them to the session.

    New questions are added after the existing ones; the session is marked ready.
    """
    session = repo.get(session_id)
    if session is None:
        return None
    documents = _usable_documents(session)

    result = await generate_deposition_questions(
        session.deponent_name,
        session.case_name,
        documents,
        gaps=session.gaps,
        contradictions=session.contradictions,
        focus_areas=focus_areas,
        existing_questions=[q.question for q in session.questions],
        client=client,
        settings=settings,
        limits=limits,
    )
    repo.set_questions(session_id, list(session.questions) + result.questions)

    if tracker is not None and usage_session_id and result.tokens_used:
        tracker.record_tokens(result.tokens_used, usage_session_id)
    return result


async def upload_document(
    repo: DepositionRepository,
    session_id: str,
    filename: str,
    data: bytes,
    document_type: DepositionDocumentType = DepositionDocumentType.OTHER,
    mime_type: Optional[str] = None,
    tracker: Optional[UsageTracker] = None,
    usage_session_id: Optional[str] = None,
    ocr: Optional[RemoteOCRClient] = None,
) -> Optional[DepositionDocument]:
    """Attach an uploaded file to a deposition session with its extracted text"""
    document = DepositionDocument(
        name=filename,
        type=document_type,
        file_type=mime_type or detect_mime_type(filename, data),
        size=len(data),
        uploaded_at=repo.clock(),
    )
    return await ingest_document(
        repo, session_id, document, data,
        mime_type=mime_type, tracker=tracker, usage_session_id=usage_session_id, ocr=ocr,
    )
