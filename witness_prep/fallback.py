"""
Fallback Content
================

Hand-written question sets substituted when the LLM is unavailable or its
output cannot be parsed. Output depends only on the inputs, apart from the
freshly generated IDs.
"""

from typing import Any, List, Sequence

from .schemas import (
    AIExaminerResponse,
    CrossExamQuestion,
    DepositionQuestion,
)

GENERAL_REFERENCE = "General Cross-Examination"
DEFAULT_DOCUMENTS_LABEL = "the documents"


def _document_names(documents: Sequence[Any]) -> str:
    names = []
    for doc in documents or []:
        name = doc.get("name") if isinstance(doc, dict) else getattr(doc, "name", None)
        if name:
            names.append(name)
    return ", ".join(names) or DEFAULT_DOCUMENTS_LABEL


# (question, category, difficulty, suggested approach, weak point, follow-ups)
DOCUMENT_QUESTIONS = [
    (
        "You've reviewed documents related to this case. Can you tell us exactly when you first became aware of the events described?",
        "timeline", "medium",
        "Be specific about dates and times. If uncertain, say so.",
        "Timeline inconsistencies",
        ["What were you doing at that time?", "Who else was present?"],
    ),
    (
        "Looking at the documents you've reviewed, can you identify any statements that you now believe may have been inaccurate?",
        "credibility", "hard",
        "If there are inaccuracies, acknowledge them. Honesty builds credibility.",
        "Prior inconsistent statements",
        ["Why didn't you correct this earlier?", "What other statements might need revision?"],
    ),
    (
        "You mentioned specific details in your statement. How can you be so certain about these details after all this time?",
        "credibility", "medium",
        "Explain what makes certain memories stand out.",
        "Memory reliability",
        ["Did you take notes at the time?", "Have you discussed these events with anyone?"],
    ),
    (
        "Based on the documents in this case, there appear to be gaps in the timeline. Can you explain what happened during these periods?",
        "timeline", "medium",
        "If you don't know, say so. Don't speculate.",
        "Incomplete knowledge",
        ["Were you present during this time?", "Who might have information about this period?"],
    ),
    (
        "The documents suggest a particular sequence of events. Do you agree with that sequence, or do you recall it differently?",
        "inconsistency", "hard",
        "If you disagree, explain specifically what you recall differently and why.",
        "Contradicting documentary evidence",
        ["What specifically do you recall differently?", "Why should your memory be trusted over the documents?"],
    ),
    (
        "Were you under any stress or distraction at the time of the events described in these documents?",
        "foundation", "medium",
        "Acknowledge any factors that might have affected your perception.",
        "Impaired observation",
        ["How might that have affected what you observed?", "Were you taking any medications?"],
    ),
    (
        "Can you explain your role in the events documented in the case materials?",
        "foundation", "easy",
        "Clearly explain your involvement and the basis for your knowledge.",
        "Limited firsthand knowledge",
        ["Were you directly involved?", "How do you have knowledge of what you're testifying about?"],
    ),
    (
        "The documents reference specific communications. Did you keep copies of all relevant communications?",
        "foundation", "medium",
        "Explain your document retention practices honestly.",
        "Missing evidence",
        ["Why didn't you keep copies?", "What happened to those communications?"],
    ),
    (
        "Is there anything in these documents that you believe is false or misleading?",
        "inconsistency", "hard",
        "If you believe something is false, explain specifically what and why.",
        "Challenging documentary evidence",
        ["How do you know it's false?", "Do you have evidence to support your claim?"],
    ),
    (
        "Who else was present that could corroborate your account?",
        "foundation", "medium",
        "Identify other witnesses who can support your testimony.",
        "Lack of corroboration",
        ["Have you spoken with them about this case?", "Would they agree with your version?"],
    ),
    (
        "How soon after the events did you first document your recollection?",
        "timeline", "medium",
        "Explain when and how you recorded your memories.",
        "Delayed documentation affects reliability",
        ["Why did you wait?", "What prompted you to finally document it?"],
    ),
    (
        "Have you reviewed these documents with anyone before today's testimony?",
        "credibility", "easy",
        "Be honest about document review. It's normal to prepare.",
        "Potential for coached testimony",
        ["Who did you review them with?", "Did anyone point out specific things you should remember?"],
    ),
    (
        "Is there any information relevant to this case that is NOT contained in these documents?",
        "foundation", "hard",
        "Disclose any relevant information not in the documents.",
        "Incomplete documentary record",
        ["Why wasn't that documented?", "Who else knows about this?"],
    ),
    (
        "Looking at the specific details in the documents, how do you explain any discrepancies between what's written and what you're testifying to today?",
        "inconsistency", "hard",
        "Address discrepancies directly.",
        "Documentary contradictions",
        ["Which version is correct?", "Were you truthful then or now?"],
    ),
    (
        "Were you consulted before any of the actions described in the documents occurred?",
        "foundation", "medium",
        "Be clear about your level of involvement.",
        "Limited involvement or knowledge",
        ["Did you have any input?", "Did you express any objections?"],
    ),
]

GENERAL_QUESTIONS = [
    (
        "How did you prepare for your testimony today?",
        "general", "easy",
        "Be honest about preparation. It's normal to review documents with counsel.",
        "May suggest coaching",
        ["Who did you meet with to prepare?", "How many times did you meet?"],
    ),
    (
        "Are you being compensated in any way for your testimony, or do you have any financial interest in the outcome?",
        "general", "easy",
        "Answer directly.",
        "Potential bias",
        ["How much are you being paid?", "Does compensation depend on the outcome?"],
    ),
    (
        "What is your relationship to the parties in this case?",
        "general", "easy",
        "Describe relationships factually without editorializing.",
        "Potential bias based on relationships",
        ["How long have you known them?", "Have you had any conflicts with them?"],
    ),
    (
        "How would you describe your memory in general? Is there anything about your testimony today that you're not completely certain about?",
        "general", "medium",
        "Be honest about your memory capabilities.",
        "Self-assessment of reliability",
        ["What specifically are you uncertain about?", "Have you forgotten important details before?"],
    ),
    (
        "Have you ever given testimony that was later found to be inaccurate or that you needed to correct?",
        "general", "hard",
        "Answer honestly. If yes, explain the circumstances.",
        "Prior credibility issues",
        ["What were the circumstances?", "How did you discover the inaccuracy?"],
    ),
]


def generate_fallback_questions(witness_name: str, documents: Sequence[Any]) -> List[CrossExamQuestion]:
    """
    The fixed 20-question cross-examination set.

    15 document-oriented questions referencing the uploaded document names,
    then 5 general credibility/bias questions.
    """
    doc_names = _document_names(documents)
    questions = []
    for rows, reference in ((DOCUMENT_QUESTIONS, doc_names), (GENERAL_QUESTIONS, GENERAL_REFERENCE)):
        for question, category, difficulty, approach, weak_point, follow_ups in rows:
            questions.append(CrossExamQuestion(
                question=question,
                category=category,
                difficulty=difficulty,
                suggested_approach=approach,
                weak_point=weak_point,
                follow_up_questions=list(follow_ups),
                document_reference=reference,
            ))
    return questions


# (question, topic, category, priority, rationale, follow-ups)
DEPOSITION_QUESTIONS = [
    (
        "Please describe your educational and professional background.",
        "Background", "foundation", "low",
        "Establishes qualifications and baseline demeanor.",
        ["Where are you currently employed?", "What are your job responsibilities?"],
    ),
    (
        "What did you do to prepare for today's deposition?",
        "Background", "foundation", "medium",
        "Identifies documents reviewed and people consulted.",
        ["Which documents did you review?", "Who did you speak with?"],
    ),
    (
        "Have you reviewed {documents} before today?",
        "Documents", "foundation", "high",
        "Locks in familiarity with the record.",
        ["When did you first see them?", "Did you help prepare any of them?"],
    ),
    (
        "Walk me through the events in the order they occurred, starting with the first one you recall.",
        "Timeline", "timeline", "high",
        "Commits the deponent to a sequence before confrontation.",
        ["What happened next?", "How do you know the date?"],
    ),
    (
        "Is there any period during these events that you cannot account for?",
        "Timeline", "gap", "high",
        "Surfaces gaps in the deponent's account.",
        ["Who could account for that period?", "Is there any document covering it?"],
    ),
    (
        "Have you ever given a statement about these events that differs from your testimony today?",
        "Prior Statements", "contradiction", "high",
        "Opens the door to impeachment with prior statements.",
        ["When was that statement given?", "Which version is accurate?"],
    ),
    (
        "Did you write, send or receive any emails, texts or notes about these events?",
        "Documents", "foundation", "medium",
        "Identifies additional discoverable material.",
        ["Do you still have them?", "Who else received them?"],
    ),
    (
        "Who else has knowledge of the matters we have discussed today?",
        "Witnesses", "general", "medium",
        "Builds the witness list.",
        ["What do you believe they know?", "Have you discussed this case with them?"],
    ),
    (
        "Is there anything in {documents} that you believe is inaccurate?",
        "Documents", "impeachment", "high",
        "Locks in agreement with the record or exposes disputes early.",
        ["What specifically is inaccurate?", "What is the correct information?"],
    ),
    (
        "Is there anything you would like to change about any answer you have given today?",
        "Closing", "follow_up", "medium",
        "Closes the record and limits later corrections.",
        ["Is your testimony today complete?", "Is there anything you have not been asked that you believe is relevant?"],
    ),
]


def generate_fallback_deposition_questions(deponent_name: str, documents: Sequence[Any]) -> List[DepositionQuestion]:
    """The fixed deposition question set used when generation fails"""
    doc_names = _document_names(documents)
    questions = []
    for question, topic, category, priority, rationale, follow_ups in DEPOSITION_QUESTIONS:
        questions.append(DepositionQuestion(
            question=question.format(documents=doc_names),
            topic=topic,
            category=category,
            priority=priority,
            rationale=rationale,
            follow_up_questions=list(follow_ups),
            document_reference=doc_names if "{documents}" in question else None,
        ))
    return questions


def fallback_examiner_response(raw_content: str = "") -> AIExaminerResponse:
    """Default practice feedback; unparseable model text becomes the feedback"""
    if raw_content and raw_content.strip():
        return AIExaminerResponse(feedback=raw_content.strip())
    return AIExaminerResponse()

