"""
Tests for the JSON-file data store and repositories.
"""

import json
from unittest.mock import patch

import pytest

from conftest import CATEGORY, OTHER_CATEGORY, make_questions
from scout_exam.models.admin_models import Alert, User
from scout_exam.models.question_model import Question
from scout_exam.models.result_model import ExamResult
from scout_exam.services.errors import ConflictError, NotFoundError
from scout_exam.services.storage import DataStore, Repositories


def _result(code="1001", **kwargs):
    kwargs.setdefault("score", 50)
    return ExamResult(exam_code=code, correct_answers=1, total_questions=2, **kwargs)


class TestPersistence:
    """Test load/save against a real file."""

    def test_saves_and_reloads(self, tmp_path):
        """Test data written by one store is read back by another."""
        path = tmp_path / "data" / "cbt.json"
        repos = Repositories(DataStore(str(path)))
        repos.questions.extend(make_questions(3))
        repos.results.append(_result(answers={"q0": 1, "q1": True}))

        again = Repositories(DataStore(str(path)))
        assert [q.id for q in again.questions.all()] == ["q0", "q1", "q2"]
        stored = again.results.all()[0]
        assert stored.answers == {"q0": 1, "q1": True}
        assert stored.answers["q1"] is True

    def test_file_is_utf8_json(self, tmp_path):
        """Test Arabic text is written unescaped."""
        path = tmp_path / "cbt.json"
        repos = Repositories(DataStore(str(path)))
        repos.users.add(User(code="1001", name="مينا", category=CATEGORY))
        raw = json.loads(path.read_text(encoding="utf-8"))
        assert raw["users"][0]["name"] == "مينا"
        assert "مينا" in path.read_text(encoding="utf-8")

    def test_memory_only_store(self):
        """Test path=None never touches the disk."""
        store = DataStore(None)
        Repositories(store).questions.extend(make_questions(1))
        assert store.path is None
        assert len(store.read("questions")) == 1

    def test_failed_write_keeps_previous_state(self, tmp_path):
        """Test a write that fails on disk leaves memory and file as they were."""
        path = tmp_path / "cbt.json"
        repos = Repositories(DataStore(str(path)))
        repos.results.append(_result(score=10))
        before = path.read_text(encoding="utf-8")

        with patch("scout_exam.services.storage.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                repos.results.append(_result(score=90))

        assert [r.score for r in repos.results.all()] == [10]
        assert path.read_text(encoding="utf-8") == before
        assert list(tmp_path.glob("*.tmp")) == []

        repos.results.append(_result(score=90))
        assert repos.results.count() == 2


class TestQuestionBank:
    """Test question repository."""

    def test_for_category_includes_untagged(self, repos):
        """Test untagged questions go to everyone; tagged ones only to their category."""
        repos.questions.extend(make_questions(2, CATEGORY))
        repos.questions.add(Question(id="other", question="?", type="truefalse",
                                     correct_answer=True, category=OTHER_CATEGORY))
        repos.questions.add(Question(id="all", question="?", type="truefalse", correct_answer=False))

        ids = [q.id for q in repos.questions.for_category(CATEGORY)]
        assert ids == ["q0", "q1", "all"]

    def test_duplicate_id(self, repos):
        """Test add() refuses an existing id and extend() skips it."""
        repos.questions.extend(make_questions(2))
        with pytest.raises(ConflictError):
            repos.questions.add(make_questions(1)[0])
        assert repos.questions.extend(make_questions(3)) == 1

    def test_update_and_delete(self, repos):
        """Test update replaces and delete removes."""
        repos.questions.extend(make_questions(2))
        q = repos.questions.get("q0").model_copy(update={"question": "Changed"})
        repos.questions.update(q)
        assert repos.questions.get("q0").question == "Changed"
        repos.questions.delete("q0")
        with pytest.raises(NotFoundError):
            repos.questions.get("q0")
        with pytest.raises(NotFoundError):
            repos.questions.delete("q0")


class TestResultStore:
    """Test results repository."""

    def test_append_is_unique(self, repos):
        """Test the same result id cannot be stored twice."""
        r = _result()
        repos.results.append(r)
        with pytest.raises(ConflictError):
            repos.results.append(r)
        assert repos.results.count() == 1

    def test_find_by_code_returns_latest(self, repos):
        """Test the most recent attempt is returned."""
        repos.results.append(_result(score=10))
        latest = _result(score=90)
        repos.results.append(latest)
        assert repos.results.find_by_code("1001").id == latest.id
        assert repos.results.find_by_code("9999") is None

    def test_clear_releases_codes(self, repos):
        """Test clearing results also frees used exam codes."""
        repos.results.append(_result())
        repos.users.mark_used("1001")
        assert repos.results.clear() == 1
        assert not repos.users.is_used("1001")


class TestUsersAndAlerts:
    """Test user codes and alert status."""

    def test_used_codes(self, repos):
        """Test mark/release of one-time codes."""
        repos.users.mark_used("1001")
        repos.users.mark_used("1001")
        assert repos.users.is_used("1001")
        assert repos.store.read("used_codes") == ["1001"]
        repos.users.release("1001")
        assert not repos.users.is_used("1001")

    def test_alert_status(self, repos):
        """Test bulk status change returns the changed alerts."""
        a = Alert(user_code="1001")
        b = Alert(user_code="1002")
        repos.alerts.append(a)
        repos.alerts.append(b)
        changed = repos.alerts.set_status([a.id], "reviewed")
        assert [x.id for x in changed] == [a.id]
        assert {x.id: x.status for x in repos.alerts.all()} == {a.id: "reviewed", b.id: "active"}

    def test_activity_log_newest_first(self, repos):
        """Test log entries are kept newest first."""
        repos.logs.add("first")
        repos.logs.add("second")
        assert [e.action for e in repos.logs.all()] == ["second", "first"]


class TestBackupRestore:
    """Test export/import of the whole document."""

    def test_round_trip(self, seeded_repos):
        """Test a backup restores into an empty store."""
        doc = seeded_repos.store.export_document()
        target = Repositories(DataStore(None))
        target.store.import_document(doc)
        assert target.users.count() == 2
        assert target.questions.count() == 5

    def test_rejects_invalid_records(self, repos):
        """Test a broken backup leaves the store untouched."""
        repos.questions.extend(make_questions(1))
        with pytest.raises(ValueError):
            repos.store.import_document({"questions": [{"id": "x"}]})
        assert repos.questions.count() == 1

    def test_rejects_unknown_sections(self, repos):
        """Test unexpected top-level keys are refused."""
        with pytest.raises(ValueError):
            repos.store.import_document({"payments": []})

    def test_reset_keeps_settings(self, seeded_repos):
        """Test reset clears data but keeps settings."""
        seeded_repos.settings.set("anti_cheat_enabled", False)
        seeded_repos.store.reset()
        assert seeded_repos.users.count() == 0
        assert seeded_repos.questions.count() == 0
        assert seeded_repos.settings.get("anti_cheat_enabled") is False
