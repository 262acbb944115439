"""
Cross-Examination Practice
==========================

Testimony tool services:
- generate_questions: 20 likely cross-examination questions for a witness
- evaluate_practice_response: examiner feedback and a follow-up for one answer
- record_practice_exchange: store an answered question on the session
- upload_document: extract a file's text and attach it to the session

Upstream failures never reach the caller: unusable LLM output is replaced
by fallback content. The only rejection is MissingInputError, raised before
any network call.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

from .config import DEFAULT_DEMO_LIMITS, DemoLimits, Settings, get_settings
from .documents import ingest_document
from .errors import MissingInputError, require_text
from .fallback import fallback_examiner_response, generate_fallback_questions
from .ingest import RemoteOCRClient, detect_mime_type
from .llm_client import ARRAY, OBJECT, LLMClient, get_llm_client, parse_json_response
from .prompts import QUESTION_COUNT, build_practice_messages, build_question_generation_messages
from .schemas import (
    AIExaminerResponse,
    CrossExamQuestion,
    CrossExamQuestionDraft,
    Document,
    PracticeExchange,
    PracticeSession,
    PracticeStatus,
    validate_drafts,
)
from .storage import TestimonyRepository, UsageTracker

logger = logging.getLogger(__name__)

# Output ceiling for one question-generation call
MAX_GENERATION_TOKENS = 8000
MAX_PRACTICE_TOKENS = 1000


@dataclass
class QuestionGenerationResult:
    questions: List[CrossExamQuestion] = field(default_factory=list)
    tokens_used: int = 0
    used_fallback: bool = False
    fallback_count: int = 0
    error: Optional[str] = None


@dataclass
class PracticeEvaluation:
    response: AIExaminerResponse
    tokens_used: int = 0
    used_fallback: bool = False
    error: Optional[str] = None


def fill_with_fallback(
    questions: List[CrossExamQuestion],
    fallback: Sequence[CrossExamQuestion],
    count: int = QUESTION_COUNT,
) -> Tuple[List[CrossExamQuestion], int]:
    """
    Top up validated questions to exactly `count` from the fallback set.

    Fallback questions are taken in order, skipping any whose text already
    appears. Returns (questions, number of fallback questions used).
    """
    result = list(questions[:count])
    seen = {q.question.strip().lower() for q in result}
    used = 0
    for candidate in fallback:
        if len(result) >= count:
            break
        if candidate.question.strip().lower() in seen:
            continue
        result.append(candidate)
        seen.add(candidate.question.strip().lower())
        used += 1
    return result, used


async def generate_questions(
    witness_name: str,
    case_name: str,
    documents: Sequence[Any],
    client: Optional[LLMClient] = None,
    settings: Optional[Settings] = None,
    limits: DemoLimits = DEFAULT_DEMO_LIMITS,
) -> QuestionGenerationResult:
    """
    Generate the cross-examination question set.

    Args:
        witness_name: Witness the questions are directed to
        case_name: Case caption
        documents: Documents (models or dicts with name/content)
        client: LLM client (default: shared singleton)
        settings: Settings (default: cached settings)
        limits: Demo ceilings; per_request bounds prompt size and output

    Returns:
        QuestionGenerationResult with exactly 20 questions

    Raises:
        MissingInputError: witness name, case name or documents missing
    """
    witness_name = require_text(witness_name, "witness_name", "Witness name is required")
    case_name = require_text(case_name, "case_name", "Case name is required")
    if not documents:
        raise MissingInputError("At least one document is required", field="documents")

    settings = settings or get_settings()
    client = client or get_llm_client()
    fallback = generate_fallback_questions(witness_name, documents)

    messages = build_question_generation_messages(
        witness_name,
        case_name,
        documents,
        max_request_tokens=limits.tokens.per_request,
        reserved_output_tokens=settings.reserved_output_tokens,
    )

    result = await client.chat(
        messages,
        model=settings.question_model,
        temperature=0.7,
        max_tokens=min(limits.tokens.per_request, MAX_GENERATION_TOKENS),
    )

    if not result.has_content:
        logger.warning(f"Question generation failed, using fallback: {result.error or 'empty completion'}")
        return QuestionGenerationResult(
            questions=fallback,
            tokens_used=0,
            used_fallback=True,
            fallback_count=len(fallback),
            error=result.error or "Empty completion",
        )

    drafts, rejected = validate_drafts(parse_json_response(result.content, expect=ARRAY), CrossExamQuestionDraft)
    if rejected:
        logger.warning(f"Rejected {rejected} malformed questions from the model")

    questions, fallback_count = fill_with_fallback([d.to_question() for d in drafts], fallback)
    if fallback_count:
        logger.info(f"Filled {fallback_count} of {QUESTION_COUNT} questions from fallback")

    return QuestionGenerationResult(
        questions=questions,
        tokens_used=result.total_tokens,
        used_fallback=fallback_count > 0,
        fallback_count=fallback_count,
    )


async def evaluate_practice_response(
    question: str,
    witness_response: str,
    witness_name: Optional[str] = None,
    case_name: Optional[str] = None,
    documents: Sequence[Any] = (),
    question_details: Optional[CrossExamQuestion] = None,
    client: Optional[LLMClient] = None,
    settings: Optional[Settings] = None,
    limits: DemoLimits = DEFAULT_DEMO_LIMITS,
) -> PracticeEvaluation:
    """
    Examiner feedback on one practice answer.

    Unparseable model text becomes the feedback; a failed call returns the
    default response.

    Raises:
        MissingInputError: question or witness_response missing
    """
    question = require_text(question, "question", "Question is required")
    witness_response = require_text(witness_response, "witness_response", "Witness response is required")

    settings = settings or get_settings()
    client = client or get_llm_client()

    messages = build_practice_messages(
        question,
        witness_response,
        witness_name=witness_name,
        case_name=case_name,
        documents=documents,
        question_details=question_details,
    )
    result = await client.chat(
        messages,
        model=settings.practice_model,
        temperature=0.7,
        max_tokens=min(limits.tokens.per_request, MAX_PRACTICE_TOKENS),
    )

    if not result.has_content:
        logger.warning(f"Practice evaluation failed, using default feedback: {result.error or 'empty completion'}")
        return PracticeEvaluation(
            response=fallback_examiner_response(),
            used_fallback=True,
            error=result.error or "Empty completion",
        )

    parsed = parse_json_response(result.content, expect=OBJECT)
    if parsed is None:
        return PracticeEvaluation(
            response=fallback_examiner_response(result.content),
            tokens_used=result.total_tokens,
            used_fallback=True,
        )

    defaults = AIExaminerResponse()
    response = AIExaminerResponse(
        follow_up=_text_or(parsed.get("followUp"), defaults.follow_up),
        feedback=_text_or(parsed.get("feedback"), defaults.feedback),
        weakness_identified=_text_or(parsed.get("weaknessIdentified"), ""),
        suggested_improvement=_text_or(parsed.get("suggestedImprovement"), ""),
    )
    return PracticeEvaluation(response=response, tokens_used=result.total_tokens)


def _text_or(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def record_practice_exchange(
    repo: TestimonyRepository,
    session_id: str,
    question: CrossExamQuestion,
    witness_response: str,
    evaluation: AIExaminerResponse,
    duration: float = 0,
) -> Optional[PracticeSession]:
    """Append the answered question to the session and mark it as practicing"""
    exchange = PracticeExchange(
        question_id=question.id,
        question=question.question,
        witness_response=witness_response,
        ai_follow_up=evaluation.follow_up,
        feedback=evaluation.feedback,
        timestamp=repo.clock(),
        duration=duration,
    )
    session = repo.add_practice_exchange(session_id, exchange)
    if session is None:
        return None
    if session.status != PracticeStatus.PRACTICING:
        session = repo.update(session_id, {"status": PracticeStatus.PRACTICING})
    return session


async def upload_document(
    repo: TestimonyRepository,
    session_id: str,
    filename: str,
    data: bytes,
    mime_type: Optional[str] = None,
    tracker: Optional[UsageTracker] = None,
    usage_session_id: Optional[str] = None,
    ocr: Optional[RemoteOCRClient] = None,
) -> Optional[Document]:
    """Attach an uploaded file to a testimony session with its extracted text"""
    document = Document(
        name=filename,
        type=mime_type or detect_mime_type(filename, data),
        size=len(data),
        uploaded_at=repo.clock(),
    )
    return await ingest_document(
        repo, session_id, document, data,
        mime_type=mime_type, tracker=tracker, usage_session_id=usage_session_id, ocr=ocr,
    )


async def generate_session_questions(
    repo: TestimonyRepository,
    session_id: str,
    client: Optional[LLMClient] = None,
    settings: Optional[Settings] = None,
    limits: DemoLimits = DEFAULT_DEMO_LIMITS,
    tracker: Optional[UsageTracker] = None,
    usage_session_id: Optional[str] = None,
) -> Optional[QuestionGenerationResult]:
    """
    Generate questions for a stored session and save them on it.

    A session still in setup moves to "generating" while the model runs;
    storing the questions marks it "ready". Returns None if the session does not exist.
    """
    session = repo.get(session_id)
    if session is None:
        return None

    documents = [d for d in session.documents if d.content]
    if not documents:
        raise MissingInputError("Upload at least one document with text first", field="documents")

    if session.status == PracticeStatus.SETUP:
        repo.update(session_id, {"status": PracticeStatus.GENERATING})
    result = await generate_questions(
        session.witness_name, session.case_name, documents,
        client=client, settings=settings, limits=limits,
    )
    repo.set_questions(session_id, result.questions)

    if tracker is not None and usage_session_id and result.tokens_used:
        tracker.record_tokens(result.tokens_used, usage_session_id)
    return result
