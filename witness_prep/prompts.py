"""
Prompt Construction
===================

System and user prompts for question generation, practice feedback and
deposition analysis. Every prompt embeds the witness identity, case name and
document text; document text is truncated to fit the request token budget.
"""

import math
from typing import Any, Dict, List, Optional, Sequence

# Rough heuristic used for budgeting: ~4 characters per token
CHARS_PER_TOKEN = 4

CONTENT_NOT_AVAILABLE = "[Content not available]"
TRUNCATED_MARKER = "... [truncated]"
PRACTICE_DOC_CHARS = 2000
# Floor for per-document text once the request budget is exhausted
MIN_DOC_CHARS = 500

QUESTION_COUNT = 20


def estimate_tokens(text: str) -> int:
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def _doc_field(doc: Any, name: str, default: Any = None) -> Any:
    if isinstance(doc, dict):
        return doc.get(name, default)
    return getattr(doc, name, default)


def format_document_context(documents: Sequence[Any], max_chars_per_doc: Optional[int] = None) -> str:
    """Render documents as delimited blocks for the user prompt"""
    blocks = []
    for doc in documents:
        name = _doc_field(doc, "name", "Untitled")
        content = _doc_field(doc, "content") or ""
        if not content:
            content = CONTENT_NOT_AVAILABLE
        elif max_chars_per_doc is not None and len(content) > max_chars_per_doc:
            content = content[:max_chars_per_doc] + TRUNCATED_MARKER
        blocks.append(f"=== DOCUMENT: {name} ===\n{content}\n=== END DOCUMENT ===")
    return "\n\n".join(blocks)


def per_document_char_budget(
    system_prompt: str,
    document_count: int,
    max_request_tokens: int,
    reserved_output_tokens: int,
) -> Optional[int]:
    """Characters allowed per document so the request fits the token ceiling"""
    if document_count <= 0:
        return None
    remaining = max_request_tokens - reserved_output_tokens - estimate_tokens(system_prompt)
    return max(MIN_DOC_CHARS, (remaining * CHARS_PER_TOKEN) // document_count)


# =============================================================================
# Testimony: question generation
# =============================================================================

def question_generation_system_prompt(witness_name: str) -> str:
    return f"""You are an experienced trial attorney preparing cross-examination questions for {witness_name}. Based on the provided case documents, generate exactly {QUESTION_COUNT} likely cross-examination questions that opposing counsel might ask {witness_name}.

WITNESS IDENTITY:
THE WITNESS YOU ARE PREPARING QUESTIONS FOR IS: {witness_name}

The documents may contain depositions, testimony or statements from OTHER people who are NOT {witness_name}. These are EVIDENCE documents about the case.
- Prepare questions asking {witness_name} what they know about what those other people said
- NEVER prepare questions directed at those other people - they are not the witness

STRUCTURE YOUR {QUESTION_COUNT} QUESTIONS AS FOLLOWS:
- 15 questions: DOCUMENT-SPECIFIC - reference specific facts, names, dates from the documents.
- 5 questions: GENERAL CROSS-EXAMINATION - credibility, memory, bias.

For each question, provide:
1. The question itself - directed to {witness_name} using "you" and "your"
2. Category: one of "timeline", "credibility", "inconsistency", "foundation", "impeachment", or "general"
3. Difficulty: "easy", "medium", or "hard"
4. A suggested approach for how {witness_name} should handle this question
5. Any weak points this question might expose
6. 2-3 potential follow-up questions
7. A reference to which document this relates to

Return your response as a JSON array with exactly {QUESTION_COUNT} questions in this format:
[
  {{
    "question": "Question directed to {witness_name}...",
    "category": "timeline|credibility|inconsistency|foundation|impeachment|general",
    "difficulty": "easy|medium|hard",
    "suggestedApproach": "How {witness_name} should approach answering",
    "weakPoint": "What vulnerability this exposes",
    "followUpQuestions": ["Follow-up 1", "Follow-up 2"],
    "documentReference": "Which document/section this relates to"
  }}
]

IMPORTANT: Return ONLY the JSON array. No markdown, no code blocks."""


def question_generation_user_prompt(witness_name: str, case_name: str, document_context: str) -> str:
    return f"""Case: {case_name}
Witness Name: {witness_name}

DOCUMENTS TO ANALYZE:
{document_context}

Generate exactly {QUESTION_COUNT} cross-examination questions for the witness {witness_name}.
Return ONLY a valid JSON array. No markdown formatting."""


def build_question_generation_messages(
    witness_name: str,
    case_name: str,
    documents: Sequence[Any],
    max_request_tokens: int,
    reserved_output_tokens: int,
) -> List[Dict[str, str]]:
    """System + user messages, truncating documents when over budget"""
    system_prompt = question_generation_system_prompt(witness_name)
    context = format_document_context(documents)
    user_prompt = question_generation_user_prompt(witness_name, case_name, context)

    if estimate_tokens(system_prompt + user_prompt) + reserved_output_tokens > max_request_tokens:
        budget = per_document_char_budget(
            system_prompt, len(documents), max_request_tokens, reserved_output_tokens
        )
        context = format_document_context(documents, max_chars_per_doc=budget)
        user_prompt = question_generation_user_prompt(witness_name, case_name, context)

    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]


# =============================================================================
# Testimony: practice feedback
# =============================================================================

AI_EXAMINER_PROMPT = """You are an experienced opposing counsel conducting a cross-examination. Your role is to:

1. Evaluate the witness's response to the question
2. Identify any weaknesses, inconsistencies, or areas to probe further based on the case documents
3. Provide a realistic follow-up question that opposing counsel might ask
4. Give constructive feedback on how the witness could improve their response

Be professional but thorough. Look for:
- Vague or evasive answers
- Inconsistencies with documents or prior statements
- Opportunities to impeach credibility
- Gaps in knowledge or memory
- Emotional reactions that could be exploited

Respond in JSON format:
{
  "followUp": "The follow-up question opposing counsel would likely ask",
  "feedback": "Constructive feedback for the witness",
  "weaknessIdentified": "Any weakness in the response that was exposed",
  "suggestedImprovement": "How the witness could have answered better"
}"""


def build_practice_messages(
    question: str,
    witness_response: str,
    witness_name: Optional[str] = None,
    case_name: Optional[str] = None,
    documents: Sequence[Any] = (),
    question_details: Optional[Any] = None,
) -> List[Dict[str, str]]:
    """Examiner prompt for one practice answer"""
    context_lines = []
    for doc in documents:
        content = _doc_field(doc, "content") or ""
        if content:
            if len(content) > PRACTICE_DOC_CHARS:
                content = content[:PRACTICE_DOC_CHARS] + TRUNCATED_MARKER
        else:
            content = CONTENT_NOT_AVAILABLE
        context_lines.append(f"=== {_doc_field(doc, 'name', 'Untitled')} ===\n{content}")
    document_context = "\n\n".join(context_lines) or "No documents provided"

    detail_lines = []
    if question_details is not None:
        for label, attr in (
            ("Suggested Approach", "suggested_approach"),
            ("Known Weak Point", "weak_point"),
            ("Document Reference", "document_reference"),
        ):
            value = _doc_field(question_details, attr)
            if value:
                detail_lines.append(f"{label}: {value}")

    user_prompt = f"""Case: {case_name or 'Unknown Case'}
Witness: {witness_name or 'Unknown Witness'}

CASE DOCUMENTS:
{document_context}

CROSS-EXAMINATION CONTEXT:
Question Asked: "{question}"
{chr(10).join(detail_lines)}

WITNESS RESPONSE: "{witness_response}"

Analyze this response in the context of the case documents. Provide a follow-up question and feedback."""

    return [
        {"role": "system", "content": AI_EXAMINER_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


# =============================================================================
# Deposition: analysis and questions
# =============================================================================

def deposition_analysis_system_prompt(deponent_name: str) -> str:
    return f"""You are an experienced litigator preparing to depose {deponent_name}. Analyze the provided case documents and identify:

1. GAPS - topics, periods or events the documents leave unexplained that {deponent_name} could be asked about
2. CONTRADICTIONS - pairs of statements from two sources that cannot both be true
3. Key themes, a timeline of events, other witnesses mentioned, and key exhibits

Severity is one of "minor", "moderate", "significant".

Return ONLY a JSON object in this format:
{{
  "gaps": [
    {{"description": "...", "documentReferences": ["..."], "severity": "minor|moderate|significant", "suggestedQuestions": ["..."]}}
  ],
  "contradictions": [
    {{
      "description": "...",
      "source1": {{"document": "...", "excerpt": "...", "page": "..."}},
      "source2": {{"document": "...", "excerpt": "...", "page": "..."}},
      "severity": "minor|moderate|significant",
      "suggestedQuestions": ["..."]
    }}
  ],
  "keyThemes": ["..."],
  "timelineEvents": [{{"date": "...", "event": "...", "source": "..."}}],
  "witnesses": ["..."],
  "keyExhibits": ["..."]
}}

No markdown, no code blocks."""


def deposition_user_prompt(
    deponent_name: str,
    case_name: str,
    document_context: str,
    instruction: str,
    case_number: Optional[str] = None,
) -> str:
    header = f"Case: {case_name}\n"
    if case_number:
        header += f"Case Number: {case_number}\n"
    return f"""{header}Deponent: {deponent_name}

DOCUMENTS TO ANALYZE:
{document_context}

{instruction}"""


def deposition_questions_system_prompt(deponent_name: str) -> str:
    return f"""You are an experienced litigator drafting deposition questions for {deponent_name}. Use the case documents, the identified gaps and contradictions, and any focus areas to write strategic, open-ended and leading questions that lock in testimony.

For each question, provide:
- "question": the question directed to {deponent_name}
- "topic": a short topic heading used to group questions in the outline
- "category": one of "gap", "contradiction", "timeline", "foundation", "impeachment", "follow_up", "general"
- "priority": "high", "medium" or "low"
- "documentReference", "pageReference", "rationale", "exhibitToShow" when applicable
- "followUpQuestions": 1-3 follow-ups

Return ONLY a JSON array of question objects. No markdown, no code blocks."""


def _bullet_list(title: str, items: Sequence[str]) -> str:
    if not items:
        return ""
    return f"{title}:\n" + "\n".join(f"- {item}" for item in items) + "\n\n"


def build_deposition_question_messages(
    deponent_name: str,
    case_name: str,
    documents: Sequence[Any],
    gaps: Sequence[Any] = (),
    contradictions: Sequence[Any] = (),
    focus_areas: Sequence[str] = (),
    existing_questions: Sequence[str] = (),
    max_chars_per_doc: Optional[int] = None,
) -> List[Dict[str, str]]:
    context = format_document_context(documents, max_chars_per_doc=max_chars_per_doc)
    extras = (
        _bullet_list("IDENTIFIED GAPS", [_doc_field(g, "description", "") for g in gaps])
        + _bullet_list("IDENTIFIED CONTRADICTIONS", [_doc_field(c, "description", "") for c in contradictions])
        + _bullet_list("FOCUS AREAS", list(focus_areas))
        + _bullet_list("ALREADY DRAFTED (do not repeat)", list(existing_questions))
    )
    instruction = f"{extras}Draft deposition questions for {deponent_name}. Return ONLY a valid JSON array."
    return [
        {"role": "system", "content": deposition_questions_system_prompt(deponent_name)},
        {"role": "user", "content": deposition_user_prompt(deponent_name, case_name, context, instruction)},
    ]


def build_deposition_analysis_messages(
    deponent_name: str,
    case_name: str,
    documents: Sequence[Any],
    case_number: Optional[str] = None,
    max_chars_per_doc: Optional[int] = None,
) -> List[Dict[str, str]]:
    context = format_document_context(documents, max_chars_per_doc=max_chars_per_doc)
    instruction = "Analyze these documents for gaps and contradictions. Return ONLY a valid JSON object."
    return [
        {"role": "system", "content": deposition_analysis_system_prompt(deponent_name)},
        {"role": "user", "content": deposition_user_prompt(deponent_name, case_name, context, instruction, case_number)},
    ]
