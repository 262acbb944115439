"""
Session Repository Tests
========================

Tests for both session repositories:
- Round trip and last-write-wins
- Cascade delete
- Nested mutators (documents, questions, practice history, outline)
- Dense outline ordering
- Retention cleanup, quota handling, corrupted state
"""

import json
import logging

import pytest

from witness_prep import schemas
from witness_prep.errors import StorageError
from witness_prep.schemas import (
    CrossExamQuestion,
    DepositionQuestion,
    Document,
    PracticeExchange,
    PracticeStatus,
    DepositionStatus,
)
from witness_prep.storage import (
    DEPOSITION_STORAGE_KEY,
    TESTIMONY_STORAGE_KEY,
    DepositionRepository,
    MemoryStorage,
    TestimonyRepository,
    WriteStatus,
)


def _question(text="Where were you on May 1?"):
    return CrossExamQuestion(question=text, category="timeline", difficulty="easy")


def _depo_question(text="Who attended the meeting?", topic="Meeting"):
    return DepositionQuestion(question=text, topic=topic, category="foundation", priority="high")


@pytest.fixture
def testimony(storage, clock):
    return TestimonyRepository(storage, ttl_hours=24, clock=clock)


@pytest.fixture
def deposition(storage, clock):
    return DepositionRepository(storage, ttl_hours=24, clock=clock)


# =============================================================================
# Testimony repository
# =============================================================================

class TestTestimonyRoundTrip:
    """create / get / list / update"""

    def test_create_then_get(self, testimony, clock):
        session = testimony.create("Jane Doe", "Smith v. Jones")
        loaded = testimony.get(session.id)

        assert loaded == session
        assert loaded.status == PracticeStatus.SETUP
        assert loaded.documents == [] and loaded.questions == [] and loaded.practice_history == []
        assert loaded.created_at == clock.now
        assert testimony.last_write.status == WriteStatus.PERSISTED

    def test_persisted_under_storage_key_in_camel_case(self, testimony, storage):
        session = testimony.create("Jane Doe", "Smith v. Jones")
        records = json.loads(storage.get_item(TESTIMONY_STORAGE_KEY))

        assert records[session.id]["witnessName"] == "Jane Doe"
        assert records[session.id]["practiceHistory"] == []

    def test_list_newest_first(self, testimony, clock):
        first = testimony.create("A", "Case A")
        clock.advance(minutes=5)
        second = testimony.create("B", "Case B")

        assert [s.id for s in testimony.list()] == [second.id, first.id]

    def test_last_write_wins(self, testimony):
        session = testimony.create("Jane Doe", "Smith v. Jones")
        testimony.update(session.id, {"case_name": "Smith v. Jones (amended)"})
        testimony.update(session.id, {"caseName": "Smith v. Jones II"})

        assert testimony.get(session.id).case_name == "Smith v. Jones II"

    def test_last_write_wins_across_instances(self, storage, clock):
        repo_a = TestimonyRepository(storage, ttl_hours=24, clock=clock)
        repo_b = TestimonyRepository(storage, ttl_hours=24, clock=clock)
        session = repo_a.create("Jane Doe", "Smith v. Jones")

        repo_a.update(session.id, {"witness_name": "Jane A. Doe"})
        repo_b.update(session.id, {"witness_name": "Jane B. Doe"})

        assert repo_a.get(session.id).witness_name == "Jane B. Doe"

    def test_update_unknown_field_raises(self, testimony):
        session = testimony.create("Jane Doe", "Smith v. Jones")
        with pytest.raises(ValueError):
            testimony.update(session.id, {"nickname": "JD"})

    def test_update_cannot_change_id(self, testimony):
        session = testimony.create("Jane Doe", "Smith v. Jones")
        with pytest.raises(ValueError):
            testimony.update(session.id, {"id": "other"})

    def test_status_regression_allowed_with_warning(self, testimony, caplog):
        session = testimony.create("Jane Doe", "Smith v. Jones")
        testimony.update(session.id, {"status": PracticeStatus.PRACTICING})

        with caplog.at_level(logging.WARNING):
            updated = testimony.update(session.id, {"status": "ready"})

        assert updated.status == PracticeStatus.READY
        assert "moved back" in caplog.text

    def test_missing_session_returns_none(self, testimony):
        assert testimony.get("nope") is None
        assert testimony.update("nope", {"case_name": "X"}) is None
        assert testimony.delete("nope") is False


class TestTestimonyNested:
    """Documents, questions and practice history"""

    def test_cascade_delete(self, testimony, storage):
        session = testimony.create("Jane Doe", "Smith v. Jones")
        docs = [Document(name="a.txt", content="A"), Document(name="b.txt", content="B")]
        for doc in docs:
            testimony.add_document(session.id, doc)
        testimony.set_questions(session.id, [_question(f"Q{i}?") for i in range(3)])

        assert testimony.delete(session.id) is True

        assert testimony.get(session.id) is None
        raw = storage.get_item(TESTIMONY_STORAGE_KEY)
        assert session.id not in raw
        assert all(doc.id not in raw for doc in docs)

    def test_update_and_remove_document(self, testimony):
        session = testimony.create("Jane Doe", "Smith v. Jones")
        doc = Document(name="memo.txt")
        testimony.add_document(session.id, doc)

        updated = testimony.update_document(session.id, doc.id, {"content": "Memo text", "status": "ready"})
        assert updated.documents[0].content == "Memo text"
        assert updated.documents[0].status == schemas.DocumentStatus.READY

        assert testimony.update_document(session.id, "missing", {"content": "x"}) is None
        assert testimony.remove_document(session.id, doc.id).documents == []
        assert testimony.remove_document(session.id, doc.id) is None

    def test_duplicate_document_id_rejected(self, testimony):
        session = testimony.create("Jane Doe", "Smith v. Jones")
        doc = Document(name="memo.txt")
        testimony.add_document(session.id, doc)
        with pytest.raises(ValueError):
            testimony.add_document(session.id, doc)

    def test_set_questions_marks_ready(self, testimony):
        session = testimony.create("Jane Doe", "Smith v. Jones")
        updated = testimony.set_questions(session.id, [_question()])

        assert updated.status == PracticeStatus.READY
        assert len(testimony.get(session.id).questions) == 1

    def test_set_questions_rejects_duplicate_ids(self, testimony):
        session = testimony.create("Jane Doe", "Smith v. Jones")
        q = _question()
        with pytest.raises(ValueError):
            testimony.set_questions(session.id, [q, q])

    def test_practice_exchange_accumulates_duration(self, testimony):
        session = testimony.create("Jane Doe", "Smith v. Jones")
        q = _question()
        for duration in (12.5, 30):
            testimony.add_practice_exchange(session.id, PracticeExchange(
                question_id=q.id, question=q.question, witness_response="At home.", duration=duration,
            ))

        loaded = testimony.get(session.id)
        assert len(loaded.practice_history) == 2
        assert loaded.total_duration == 42.5


# =============================================================================
# Retention, quota and corruption
# =============================================================================

class TestRetention:
    def test_create_removes_sessions_older_than_ttl(self, testimony, clock):
        old = testimony.create("Old", "Old Case")
        clock.advance(hours=25)
        fresh = testimony.create("New", "New Case")

        assert testimony.get(old.id) is None
        assert testimony.get(fresh.id) is not None

    def test_sessions_within_ttl_survive(self, testimony, clock):
        kept = testimony.create("Kept", "Case")
        clock.advance(hours=23)
        testimony.create("New", "Case")

        assert testimony.get(kept.id) is not None


class TestQuota:
    def test_aggressive_cleanup_frees_space(self, storage, clock):
        repo = TestimonyRepository(storage, ttl_hours=24, clock=clock)
        old = repo.create("Jane Doe", "Smith v. Jones")
        storage.quota_bytes = storage.used_bytes() + 50

        clock.advance(hours=13)
        new = repo.create("Jane Doe", "Smith v. Jones")

        assert repo.last_write.status == WriteStatus.PERSISTED
        assert repo.last_write.evicted == [old.id]
        assert repo.get(old.id) is None
        assert repo.get(new.id) is not None

    def test_memory_only_when_still_over_quota(self, clock, caplog):
        storage = MemoryStorage(quota_bytes=64)
        repo = TestimonyRepository(storage, ttl_hours=24, clock=clock)

        with caplog.at_level(logging.WARNING):
            session = repo.create("Jane Doe", "Smith v. Jones")

        assert repo.last_write.status == WriteStatus.MEMORY_ONLY
        assert "memory only" in caplog.text
        assert storage.get_item(TESTIMONY_STORAGE_KEY) is None
        # visible to this repository, lost to a fresh one
        assert repo.get(session.id) is not None
        assert TestimonyRepository(storage, ttl_hours=24, clock=clock).get(session.id) is None

    def test_pending_changes_persist_once_space_frees(self, clock):
        storage = MemoryStorage(quota_bytes=64)
        repo = TestimonyRepository(storage, ttl_hours=24, clock=clock)
        session = repo.create("Jane Doe", "Smith v. Jones")

        storage.quota_bytes = 1024 * 1024
        repo.update(session.id, {"case_name": "Renamed"})

        assert repo.last_write.persisted
        fresh = TestimonyRepository(storage, ttl_hours=24, clock=clock)
        assert fresh.get(session.id).case_name == "Renamed"

    def test_backend_error_reported_as_failed(self, clock):
        class BrokenStorage(MemoryStorage):
            def _write(self, key, value):
                raise StorageError("disk full")

        repo = TestimonyRepository(BrokenStorage(quota_bytes=1024 * 1024), ttl_hours=24, clock=clock)
        session = repo.create("Jane Doe", "Smith v. Jones")

        assert repo.last_write.status == WriteStatus.FAILED
        assert "disk full" in repo.last_write.error
        assert repo.get(session.id) is None


class TestCorruptedState:
    @pytest.mark.parametrize("raw", ["{not json", "[1, 2, 3]", '"text"'])
    def test_unreadable_blob_reads_as_empty(self, testimony, storage, raw):
        storage.set_item(TESTIMONY_STORAGE_KEY, raw)
        assert testimony.list() == []

    def test_invalid_record_skipped(self, testimony, storage):
        session = testimony.create("Jane Doe", "Smith v. Jones")
        records = json.loads(storage.get_item(TESTIMONY_STORAGE_KEY))
        records["broken"] = {"id": "broken", "witnessName": 42}
        storage.set_item(TESTIMONY_STORAGE_KEY, json.dumps(records))

        assert [s.id for s in testimony.list()] == [session.id]

    def test_timestamps_without_offset_read_as_utc(self, testimony, storage):
        storage.set_item(TESTIMONY_STORAGE_KEY, json.dumps({
            "s1": {"id": "s1", "witnessName": "A", "caseName": "B", "createdAt": "2026-03-02T10:00:00"},
            "s2": {"id": "s2", "witnessName": "C", "caseName": "D", "createdAt": "2026-03-01T00:00:00"},
        }))

        session = testimony.create("Jane Doe", "Smith v. Jones")

        assert [s.id for s in testimony.list()] == [session.id, "s1"]
        assert testimony.get("s1").created_at.tzinfo is not None

    def test_storage_stats(self, testimony, storage):
        testimony.create("Jane Doe", "Smith v. Jones")
        stats = testimony.storage_stats()

        assert stats.session_count == 1
        assert stats.used_bytes == storage.size_of(TESTIMONY_STORAGE_KEY) > 0
        assert stats.quota_bytes == storage.quota_bytes
        assert 0 <= stats.percent_used < 1

    def test_clear_all(self, testimony, storage):
        testimony.create("Jane Doe", "Smith v. Jones")
        testimony.clear_all()
        assert storage.get_item(TESTIMONY_STORAGE_KEY) is None
        assert testimony.list() == []


# =============================================================================
# Deposition repository
# =============================================================================

class TestDepositionRepository:
    def test_create(self, deposition, storage):
        session = deposition.create("John Roe", "Smith v. Jones", case_number="24-cv-101")
        assert session.status == DepositionStatus.SETUP
        assert session.outline is None
        assert session.id in json.loads(storage.get_item(DEPOSITION_STORAGE_KEY))

    def test_set_analysis_results(self, deposition):
        session = deposition.create("John Roe", "Smith v. Jones")
        gap = schemas.TestimonyGap(description="No account of May 2", severity="significant")
        contradiction = schemas.Contradiction(
            description="Meeting date differs",
            source1={"document": "Memo", "excerpt": "May 1", "page": 2},
            source2={"document": "Email", "excerpt": "May 3"},
        )
        analysis = schemas.DepositionAnalysis(key_themes=["Timeline"])

        updated = deposition.set_analysis_results(session.id, [gap], [contradiction], analysis)

        assert updated.gaps[0].description == "No account of May 2"
        assert updated.contradictions[0].source1.page == "2"
        assert deposition.get(session.id).analysis.key_themes == ["Timeline"]

    def test_outline_operations_need_outline(self, deposition):
        session = deposition.create("John Roe", "Smith v. Jones")
        assert deposition.add_outline_section(session.id, "Background") is None
        assert deposition.reorder_outline_sections(session.id, []) is None


class TestOutlineOrdering:
    """Section order stays dense 0..n-1"""

    @pytest.fixture
    def outline_session(self, deposition):
        session = deposition.create("John Roe", "Smith v. Jones")
        deposition.create_outline(session.id, "Roe Deposition")
        for title in ("Background", "Timeline", "Documents"):
            deposition.add_outline_section(session.id, title)
        return deposition.get(session.id)

    def _sections(self, session):
        return sorted(session.outline.sections, key=lambda s: s.order)

    def test_add_assigns_dense_order(self, outline_session):
        assert [s.order for s in self._sections(outline_session)] == [0, 1, 2]

    def test_reorder(self, deposition, outline_session):
        a, b, c = self._sections(outline_session)
        updated = deposition.reorder_outline_sections(outline_session.id, [c.id, a.id, b.id])

        sections = self._sections(updated)
        assert [s.order for s in sections] == [0, 1, 2]
        assert [s.title for s in sections] == ["Documents", "Background", "Timeline"]

    def test_reorder_ignores_unknown_and_duplicates_and_appends_omitted(self, deposition, outline_session):
        a, b, c = self._sections(outline_session)
        updated = deposition.reorder_outline_sections(outline_session.id, [c.id, "ghost", c.id])

        sections = self._sections(updated)
        assert [s.id for s in sections] == [c.id, a.id, b.id]
        assert [s.order for s in sections] == [0, 1, 2]

    def test_remove_redensifies(self, deposition, outline_session):
        a, b, c = self._sections(outline_session)
        updated = deposition.remove_outline_section(outline_session.id, b.id)

        assert [(s.title, s.order) for s in self._sections(updated)] == [("Background", 0), ("Documents", 1)]

    def test_update_section_ignores_order(self, deposition, outline_session):
        a = self._sections(outline_session)[0]
        updated = deposition.update_outline_section(
            outline_session.id, a.id, {"title": "Personal Background", "order": 7, "notes": "Keep short"}
        )

        section = self._sections(updated)[0]
        assert (section.title, section.order, section.notes) == ("Personal Background", 0, "Keep short")

    def test_updated_at_advances(self, deposition, outline_session, clock):
        before = outline_session.outline.updated_at
        clock.advance(minutes=1)
        updated = deposition.add_outline_section(outline_session.id, "Closing")
        assert updated.outline.updated_at > before

    def test_add_and_remove_question_in_section(self, deposition, outline_session):
        a = self._sections(outline_session)[0]
        question = _depo_question()

        updated = deposition.add_question_to_section(outline_session.id, a.id, question)
        assert self._sections(updated)[0].questions[0].id == question.id

        with pytest.raises(ValueError):
            deposition.add_question_to_section(outline_session.id, a.id, question)

        updated = deposition.remove_question_from_section(outline_session.id, a.id, question.id)
        assert self._sections(updated)[0].questions == []
        assert deposition.remove_question_from_section(outline_session.id, a.id, question.id) is None
