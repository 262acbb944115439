"""
Pydantic Schemas for Witness Prep Service
=========================================

Session aggregates and their parts for both tools. Persisted JSON uses the
camelCase field names of the stored records (witnessName, practiceHistory...);
Python code uses snake_case attributes.

Draft models (CrossExamQuestionDraft, DepositionQuestionDraft, ...) describe a
single item as returned by the LLM: no id, strict enum membership, required
text fields. An item that fails validation is rejected individually.
"""

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model: snake_case in Python, camelCase on disk"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator("*", mode="after")
    @classmethod
    def _aware_datetimes(cls, v):
        # Stored timestamps without an offset are read as UTC
        if isinstance(v, datetime) and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def to_record(self) -> Dict[str, Any]:
        """JSON-ready dict with camelCase keys"""
        return self.model_dump(mode="json", by_alias=True)


def merge_fields(model: BaseModel, updates: Dict[str, Any]) -> BaseModel:
    """
    Shallow-merge partial fields into a model and re-validate.

    Keys may be attribute names or their camelCase aliases. Unknown keys raise
    ValueError.
    """
    fields = type(model).model_fields
    by_alias = {(info.alias or name): name for name, info in fields.items()}

    data = {name: getattr(model, name) for name in fields}
    for key, value in updates.items():
        name = key if key in fields else by_alias.get(key)
        if name is None:
            raise ValueError(f"Unknown field '{key}' for {type(model).__name__}")
        data[name] = value

    return type(model).model_validate(data)


# =============================================================================
# ENUMS
# =============================================================================

class DocumentStatus(str, Enum):
    UPLOADING = "uploading"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class QuestionCategory(str, Enum):
    """Cross-examination question categories"""
    TIMELINE = "timeline"
    CREDIBILITY = "credibility"
    INCONSISTENCY = "inconsistency"
    FOUNDATION = "foundation"
    IMPEACHMENT = "impeachment"
    GENERAL = "general"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class PracticeStatus(str, Enum):
    """Testimony session lifecycle, in forward order"""
    SETUP = "setup"
    GENERATING = "generating"
    READY = "ready"
    PRACTICING = "practicing"
    COMPLETED = "completed"


class DepositionStatus(str, Enum):
    """Deposition session lifecycle, in forward order"""
    SETUP = "setup"
    UPLOADING = "uploading"
    ANALYZING = "analyzing"
    READY = "ready"
    COMPLETED = "completed"


class DepositionDocumentType(str, Enum):
    PRIOR_TESTIMONY = "prior_testimony"
    EXHIBIT = "exhibit"
    TRANSCRIPT = "transcript"
    CASE_FILE = "case_file"
    OTHER = "other"


class Severity(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"


class DepositionCategory(str, Enum):
    GAP = "gap"
    CONTRADICTION = "contradiction"
    TIMELINE = "timeline"
    FOUNDATION = "foundation"
    IMPEACHMENT = "impeachment"
    FOLLOW_UP = "follow_up"
    GENERAL = "general"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ExportFormat(str, Enum):
    DOCX = "docx"
    PDF = "pdf"
    TXT = "txt"


def _status_rank(status: Enum) -> int:
    return list(type(status)).index(status)


def is_status_regression(current: Enum, proposed: Enum) -> bool:
    """True when proposed moves backwards through the lifecycle"""
    return _status_rank(proposed) < _status_rank(current)


# =============================================================================
# TESTIMONY TOOL
# =============================================================================

class Document(CamelModel):
    """Uploaded case document, owned by its session"""
    id: str = Field(default_factory=new_id)
    name: str
    type: str = Field("text/plain", description="MIME type")
    size: int = 0
    uploaded_at: datetime = Field(default_factory=utc_now)
    object_id: Optional[str] = None
    content: Optional[str] = None
    status: DocumentStatus = DocumentStatus.UPLOADING
    page_count: Optional[int] = None


class CrossExamQuestion(CamelModel):
    id: str = Field(default_factory=new_id)
    question: str
    category: QuestionCategory
    difficulty: Difficulty
    suggested_approach: Optional[str] = None
    weak_point: Optional[str] = None
    follow_up_questions: Optional[List[str]] = None
    document_reference: Optional[str] = None


class PracticeExchange(CamelModel):
    id: str = Field(default_factory=new_id)
    question_id: str
    question: str
    witness_response: str
    ai_follow_up: Optional[str] = None
    feedback: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)
    duration: float = Field(0, ge=0, description="Seconds spent answering")


class PracticeSession(CamelModel):
    """Root aggregate for the testimony tool"""
    id: str = Field(default_factory=new_id)
    witness_name: str
    case_name: str
    created_at: datetime = Field(default_factory=utc_now)
    documents: List[Document] = Field(default_factory=list)
    questions: List[CrossExamQuestion] = Field(default_factory=list)
    status: PracticeStatus = PracticeStatus.SETUP
    practice_history: List[PracticeExchange] = Field(default_factory=list)
    total_duration: float = 0
    recording_url: Optional[str] = None


class AIExaminerResponse(CamelModel):
    follow_up: str = "Can you elaborate on that answer?"
    feedback: str = "Your response was received. Consider being more specific in your answers."
    weakness_identified: str = ""
    suggested_improvement: str = ""


# =============================================================================
# DEPOSITION TOOL
# =============================================================================

class DepositionDocument(CamelModel):
    id: str = Field(default_factory=new_id)
    name: str
    type: DepositionDocumentType = DepositionDocumentType.OTHER
    file_type: str = "text/plain"
    size: int = 0
    uploaded_at: datetime = Field(default_factory=utc_now)
    object_id: Optional[str] = None
    content: Optional[str] = None
    status: DocumentStatus = DocumentStatus.UPLOADING
    page_count: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None


class TestimonyGap(CamelModel):
    id: str = Field(default_factory=new_id)
    description: str
    document_references: List[str] = Field(default_factory=list)
    severity: Severity = Severity.MODERATE
    suggested_questions: List[str] = Field(default_factory=list)


class SourceExcerpt(CamelModel):
    document: str
    excerpt: str
    page: Optional[str] = None

    @field_validator("page", mode="before")
    @classmethod
    def _page_as_text(cls, v):
        return _optional_text(v)


class Contradiction(CamelModel):
    """Paired excerpts from two sources that cannot both be true"""
    id: str = Field(default_factory=new_id)
    description: str
    source1: SourceExcerpt
    source2: SourceExcerpt
    severity: Severity = Severity.MODERATE
    suggested_questions: List[str] = Field(default_factory=list)


class DepositionQuestion(CamelModel):
    id: str = Field(default_factory=new_id)
    question: str
    topic: str
    category: DepositionCategory
    priority: Priority
    document_reference: Optional[str] = None
    page_reference: Optional[str] = None
    rationale: Optional[str] = None
    follow_up_questions: Optional[List[str]] = None
    exhibit_to_show: Optional[str] = None


class OutlineSection(CamelModel):
    id: str = Field(default_factory=new_id)
    title: str
    order: int = 0
    questions: List[DepositionQuestion] = Field(default_factory=list)
    notes: Optional[str] = None
    estimated_time: Optional[int] = Field(None, description="Minutes")


class DepositionOutline(CamelModel):
    id: str = Field(default_factory=new_id)
    title: str
    sections: List[OutlineSection] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class TimelineEvent(CamelModel):
    date: str
    event: str
    source: str = ""

    @field_validator("date", "event", "source", mode="before")
    @classmethod
    def _as_text(cls, v):
        return "" if v is None else str(v).strip()


class DepositionAnalysis(CamelModel):
    key_themes: List[str] = Field(default_factory=list)
    timeline_events: List[TimelineEvent] = Field(default_factory=list)
    witnesses: List[str] = Field(default_factory=list)
    key_exhibits: List[str] = Field(default_factory=list)


class DepositionSession(CamelModel):
    """Root aggregate for the deposition tool"""
    id: str = Field(default_factory=new_id)
    deponent_name: str
    case_name: str
    case_number: Optional[str] = None
    deposition_date: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    documents: List[DepositionDocument] = Field(default_factory=list)
    gaps: List[TestimonyGap] = Field(default_factory=list)
    contradictions: List[Contradiction] = Field(default_factory=list)
    questions: List[DepositionQuestion] = Field(default_factory=list)
    outline: Optional[DepositionOutline] = None
    status: DepositionStatus = DepositionStatus.SETUP
    analysis: Optional[DepositionAnalysis] = None


class AnalysisResult(CamelModel):
    gaps: List[TestimonyGap] = Field(default_factory=list)
    contradictions: List[Contradiction] = Field(default_factory=list)
    summary: DepositionAnalysis = Field(default_factory=DepositionAnalysis)
    tokens_used: int = 0
    used_fallback: bool = False
    rejected_items: int = 0


# =============================================================================
# USAGE RECORDS
# =============================================================================

class TokenUsage(CamelModel):
    session_id: str
    session_tokens: int = 0
    daily_tokens: int = 0
    daily_reset_at: datetime
    last_updated: datetime = Field(default_factory=utc_now)


class OCRUsage(CamelModel):
    session_id: str
    session_documents: int = 0
    session_pages: int = 0
    daily_pages: int = 0
    daily_reset_at: datetime
    last_updated: datetime = Field(default_factory=utc_now)


class TokenStats(BaseModel):
    session_used: int
    session_limit: int
    daily_used: int
    daily_limit: int
    percent_used: float


class OCRStats(BaseModel):
    documents_used: int
    documents_limit: int
    pages_used: int
    daily_pages_used: int
    daily_pages_limit: int
    percent_used: float


class UsageStats(BaseModel):
    tokens: TokenStats
    ocr: OCRStats


class LimitCheck(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    remaining: int = 0


class ExportOptions(BaseModel):
    format: ExportFormat = ExportFormat.DOCX
    include_citations: bool = True
    include_rationale: bool = True
    include_follow_ups: bool = True
    group_by_topic: bool = False


# =============================================================================
# LLM ITEM DRAFTS - strict per-item validation
# =============================================================================

def _normalize_token(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower().replace("-", "_").replace(" ", "_")
    return value


def _clean_strings(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, list):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return value


def _optional_text(value: Any) -> Any:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class CrossExamQuestionDraft(CamelModel):
    """One cross-exam question as returned by the LLM"""
    question: str = Field(..., min_length=1)
    category: QuestionCategory
    difficulty: Difficulty
    suggested_approach: Optional[str] = None
    weak_point: Optional[str] = None
    follow_up_questions: Optional[List[str]] = None
    document_reference: Optional[str] = None

    @field_validator("question", mode="before")
    @classmethod
    def _strip_question(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("category", "difficulty", mode="before")
    @classmethod
    def _normalize_enum(cls, v):
        return _normalize_token(v)

    @field_validator("suggested_approach", "weak_point", "document_reference", mode="before")
    @classmethod
    def _text(cls, v):
        return _optional_text(v)

    @field_validator("follow_up_questions", mode="before")
    @classmethod
    def _follow_ups(cls, v):
        return _clean_strings(v)

    def to_question(self) -> CrossExamQuestion:
        return CrossExamQuestion(**self.model_dump())


class DepositionQuestionDraft(CamelModel):
    question: str = Field(..., min_length=1)
    topic: str = Field(..., min_length=1)
    category: DepositionCategory
    priority: Priority
    document_reference: Optional[str] = None
    page_reference: Optional[str] = None
    rationale: Optional[str] = None
    follow_up_questions: Optional[List[str]] = None
    exhibit_to_show: Optional[str] = None

    @field_validator("question", "topic", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("category", "priority", mode="before")
    @classmethod
    def _normalize_enum(cls, v):
        return _normalize_token(v)

    @field_validator("document_reference", "page_reference", "rationale", "exhibit_to_show", mode="before")
    @classmethod
    def _text(cls, v):
        return _optional_text(v)

    @field_validator("follow_up_questions", mode="before")
    @classmethod
    def _follow_ups(cls, v):
        return _clean_strings(v)

    def to_question(self) -> DepositionQuestion:
        return DepositionQuestion(**self.model_dump())


class TestimonyGapDraft(CamelModel):
    description: str = Field(..., min_length=1)
    document_references: List[str] = Field(default_factory=list)
    severity: Severity
    suggested_questions: List[str] = Field(default_factory=list)

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_enum(cls, v):
        return _normalize_token(v)

    @field_validator("document_references", "suggested_questions", mode="before")
    @classmethod
    def _lists(cls, v):
        return _clean_strings(v) or []

    def to_gap(self) -> TestimonyGap:
        return TestimonyGap(**self.model_dump())


class ContradictionDraft(CamelModel):
    description: str = Field(..., min_length=1)
    source1: SourceExcerpt
    source2: SourceExcerpt
    severity: Severity
    suggested_questions: List[str] = Field(default_factory=list)

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_enum(cls, v):
        return _normalize_token(v)

    @field_validator("suggested_questions", mode="before")
    @classmethod
    def _lists(cls, v):
        return _clean_strings(v) or []

    def to_contradiction(self) -> Contradiction:
        return Contradiction(**self.model_dump())


D = TypeVar("D", bound=BaseModel)


def validate_drafts(items: Any, draft_model: Type[D]) -> Tuple[List[D], int]:
    """
    Validate LLM items one at a time.

    Returns the valid drafts in their original order and the number rejected.
    A non-list input counts as zero items.
    """
    if not isinstance(items, list):
        return [], 0

    valid: List[D] = []
    rejected = 0
    for index, item in enumerate(items):
        try:
            valid.append(draft_model.model_validate(item))
        except ValidationError as e:
            rejected += 1
            logger.debug(f"Rejected {draft_model.__name__} #{index}: {e.error_count()} errors")
    return valid, rejected
