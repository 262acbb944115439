"""
Cross-Examination Tests
=======================

Tests for the testimony tool services:
- Question generation (parsed, partial, oversized, failed)
- Input validation before any network call
- Practice feedback parsing and defaults
- Session flows: generation, practice exchanges
"""

import json

import httpx
import pytest

from witness_prep.cross_exam import (
    MAX_PRACTICE_TOKENS,
    evaluate_practice_response,
    fill_with_fallback,
    generate_questions,
    generate_session_questions,
    record_practice_exchange,
)
from witness_prep.errors import MissingInputError
from witness_prep.fallback import generate_fallback_questions
from witness_prep.schemas import AIExaminerResponse, Document, DocumentStatus, PracticeStatus
from witness_prep.storage import TestimonyRepository, UsageTracker

from conftest import failing, make_client, replying, timing_out

DOCUMENTS = [{"name": "Deposition.pdf", "content": "The meeting occurred on May 1."}]


def _question(text: str, category: str = "timeline", difficulty: str = "medium") -> dict:
    return {
        "question": text,
        "category": category,
        "difficulty": difficulty,
        "suggestedApproach": "Stay calm and answer only what is asked.",
        "weakPoint": "Date uncertainty",
        "followUpQuestions": ["How do you know?"],
        "documentReference": "Deposition.pdf",
    }


def _questions(count: int) -> str:
    return json.dumps([_question(f"Generated question {i}?") for i in range(count)])


def _never_called(request):
    raise AssertionError("no request expected")


# =============================================================================
# Question generation
# =============================================================================

class TestGenerateQuestions:
    @pytest.mark.asyncio
    async def test_upstream_failure_returns_fallback_set(self):
        result = await generate_questions(
            "Jane Doe", "Smith v. Jones", DOCUMENTS, client=make_client(failing(500)),
        )

        assert len(result.questions) == 20
        assert result.used_fallback is True
        assert result.tokens_used == 0
        assert result.fallback_count == 20
        assert "500" in result.error
        expected = [q.question for q in generate_fallback_questions("Jane Doe", DOCUMENTS)]
        assert [q.question for q in result.questions] == expected

    @pytest.mark.asyncio
    async def test_valid_response_used_as_is(self):
        calls = []
        client = make_client(replying(_questions(20), total_tokens=3200, calls=calls))

        result = await generate_questions("Jane Doe", "Smith v. Jones", DOCUMENTS, client=client)

        assert result.used_fallback is False
        assert result.fallback_count == 0
        assert result.tokens_used == 3200
        assert [q.question for q in result.questions] == [f"Generated question {i}?" for i in range(20)]
        assert len({q.id for q in result.questions}) == 20

        request = calls[0]
        assert request["temperature"] == 0.7
        assert request["max_tokens"] == 4000
        assert request["model"] == "casemark/casemark-core-1"
        assert "Jane Doe" in request["messages"][0]["content"]
        assert "The meeting occurred on May 1." in request["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_partial_response_padded_from_fallback(self):
        items = [_question(f"Generated question {i}?") for i in range(5)]
        items.append({"question": "Missing category?", "difficulty": "easy"})
        items.append("not an object")
        client = make_client(replying(json.dumps(items)))

        result = await generate_questions("Jane Doe", "Smith v. Jones", DOCUMENTS, client=client)

        assert len(result.questions) == 20
        assert result.fallback_count == 15
        assert result.used_fallback is True
        assert result.questions[0].question == "Generated question 0?"
        assert all(q.question != "Missing category?" for q in result.questions)

    @pytest.mark.asyncio
    async def test_oversized_response_truncated(self):
        client = make_client(replying(_questions(25)))

        result = await generate_questions("Jane Doe", "Smith v. Jones", DOCUMENTS, client=client)

        assert len(result.questions) == 20
        assert result.questions[-1].question == "Generated question 19?"
        assert result.fallback_count == 0

    @pytest.mark.asyncio
    async def test_fenced_response_and_loose_enums(self):
        items = [_question(f"Q{i}?", category="Impeachment", difficulty="HARD") for i in range(20)]
        client = make_client(replying("Here you go:\n```json\n" + json.dumps(items) + "\n```"))

        result = await generate_questions("Jane Doe", "Smith v. Jones", DOCUMENTS, client=client)

        assert result.fallback_count == 0
        assert result.questions[0].category.value == "impeachment"
        assert result.questions[0].difficulty.value == "hard"

    @pytest.mark.asyncio
    async def test_unparseable_response_returns_fallback(self):
        client = make_client(replying("I cannot help with that."))

        result = await generate_questions("Jane Doe", "Smith v. Jones", DOCUMENTS, client=client)

        assert result.fallback_count == 20
        assert result.tokens_used == 1500

    @pytest.mark.asyncio
    async def test_timeout_returns_fallback(self):
        result = await generate_questions(
            "Jane Doe", "Smith v. Jones", DOCUMENTS, client=make_client(timing_out),
        )

        assert result.used_fallback is True
        assert result.error == "timed out"
        assert len(result.questions) == 20

    @pytest.mark.asyncio
    async def test_missing_api_key_returns_fallback(self):
        client = make_client(_never_called, llm_api_key=None)

        result = await generate_questions("Jane Doe", "Smith v. Jones", DOCUMENTS, client=client)

        assert result.used_fallback is True
        assert result.error == "API key not configured"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("witness,case,documents,field", [
        ("", "Smith v. Jones", DOCUMENTS, "witness_name"),
        ("   ", "Smith v. Jones", DOCUMENTS, "witness_name"),
        ("Jane Doe", "", DOCUMENTS, "case_name"),
        ("Jane Doe", "Smith v. Jones", [], "documents"),
    ])
    async def test_missing_input_rejected_before_request(self, witness, case, documents, field):
        with pytest.raises(MissingInputError) as exc_info:
            await generate_questions(witness, case, documents, client=make_client(_never_called))

        assert exc_info.value.field == field


class TestFillWithFallback:
    def test_skips_duplicate_text(self):
        fallback = generate_fallback_questions("Jane Doe", DOCUMENTS)
        generated = [fallback[0].model_copy(update={"id": "own"})]

        questions, used = fill_with_fallback(generated, fallback)

        assert len(questions) == 20
        assert used == 19
        assert questions[0].id == "own"
        assert len({q.question for q in questions}) == 20


# =============================================================================
# Practice feedback
# =============================================================================

class TestPracticeEvaluation:
    @pytest.mark.asyncio
    async def test_parsed_feedback(self):
        calls = []
        content = json.dumps({
            "followUp": "So you were not at the meeting?",
            "feedback": "Good, concise answer.",
            "weaknessIdentified": "",
            "suggestedImprovement": "Avoid volunteering dates.",
        })
        client = make_client(replying(content, total_tokens=400, calls=calls))

        evaluation = await evaluate_practice_response(
            "Where were you on May 1?", "At the office.",
            witness_name="Jane Doe", case_name="Smith v. Jones", documents=DOCUMENTS, client=client,
        )

        assert evaluation.used_fallback is False
        assert evaluation.tokens_used == 400
        assert evaluation.response.follow_up == "So you were not at the meeting?"
        assert evaluation.response.suggested_improvement == "Avoid volunteering dates."
        assert calls[0]["model"] == "anthropic/claude-3-haiku-20240307"
        assert calls[0]["max_tokens"] == MAX_PRACTICE_TOKENS
        assert "At the office." in calls[0]["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_missing_fields_use_defaults(self):
        client = make_client(replying(json.dumps({"feedback": "Too long."})))

        evaluation = await evaluate_practice_response("Q?", "A.", client=client)

        assert evaluation.response.feedback == "Too long."
        assert evaluation.response.follow_up == AIExaminerResponse().follow_up

    @pytest.mark.asyncio
    async def test_prose_becomes_feedback(self):
        client = make_client(replying("You hesitated before answering."))

        evaluation = await evaluate_practice_response("Q?", "A.", client=client)

        assert evaluation.used_fallback is True
        assert evaluation.response.feedback == "You hesitated before answering."
        assert evaluation.response.follow_up == AIExaminerResponse().follow_up

    @pytest.mark.asyncio
    async def test_failure_returns_default_response(self):
        evaluation = await evaluate_practice_response("Q?", "A.", client=make_client(failing(502)))

        assert evaluation.used_fallback is True
        assert evaluation.tokens_used == 0
        assert evaluation.response == AIExaminerResponse()

    @pytest.mark.asyncio
    async def test_missing_response_rejected(self):
        with pytest.raises(MissingInputError):
            await evaluate_practice_response("Q?", "", client=make_client(_never_called))


# =============================================================================
# Session flows
# =============================================================================

class TestSessionFlows:
    @pytest.fixture
    def repo(self, storage, clock):
        return TestimonyRepository(storage, ttl_hours=24, clock=clock)

    def _session_with_document(self, repo):
        session = repo.create("Jane Doe", "Smith v. Jones")
        repo.add_document(session.id, Document(
            name="Deposition.pdf", content="The meeting occurred on May 1.", status=DocumentStatus.READY,
        ))
        return session

    @pytest.mark.asyncio
    async def test_generate_session_questions_stores_and_records(self, repo, storage, clock):
        tracker = UsageTracker(storage, clock=clock)
        session = self._session_with_document(repo)

        result = await generate_session_questions(
            repo, session.id, client=make_client(replying(_questions(20), total_tokens=2500)),
            tracker=tracker, usage_session_id="tab_1",
        )

        stored = repo.get(session.id)
        assert stored.status == PracticeStatus.READY
        assert [q.id for q in stored.questions] == [q.id for q in result.questions]
        assert tracker.get_token_usage("tab_1").session_tokens == 2500

    @pytest.mark.asyncio
    async def test_fallback_generation_records_no_tokens(self, repo, storage, clock):
        tracker = UsageTracker(storage, clock=clock)
        session = self._session_with_document(repo)

        await generate_session_questions(
            repo, session.id, client=make_client(failing()), tracker=tracker, usage_session_id="tab_1",
        )

        assert len(repo.get(session.id).questions) == 20
        assert tracker.get_token_usage("tab_1").session_tokens == 0

    @pytest.mark.asyncio
    async def test_session_without_text_rejected(self, repo):
        session = repo.create("Jane Doe", "Smith v. Jones")
        repo.add_document(session.id, Document(name="scan.png", status=DocumentStatus.ERROR))

        with pytest.raises(MissingInputError):
            await generate_session_questions(repo, session.id, client=make_client(_never_called))

    @pytest.mark.asyncio
    async def test_unknown_session(self, repo):
        assert await generate_session_questions(repo, "missing", client=make_client(_never_called)) is None

    def test_record_practice_exchange(self, repo, clock):
        session = self._session_with_document(repo)
        question = generate_fallback_questions("Jane Doe", DOCUMENTS)[0]
        repo.set_questions(session.id, [question])

        updated = record_practice_exchange(
            repo, session.id, question, "At the office.",
            AIExaminerResponse(follow_up="Who saw you?", feedback="Fine."), duration=12.5,
        )

        assert updated.status == PracticeStatus.PRACTICING
        exchange = updated.practice_history[0]
        assert exchange.question_id == question.id
        assert exchange.ai_follow_up == "Who saw you?"
        assert exchange.timestamp == clock()
        assert updated.total_duration == 12.5

    def test_record_practice_exchange_unknown_session(self, repo):
        question = generate_fallback_questions("Jane Doe", DOCUMENTS)[0]
        assert record_practice_exchange(repo, "missing", question, "A.", AIExaminerResponse()) is None
