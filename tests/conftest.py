"""
Shared fixtures: in-memory data store, sample questions and students.
"""

import sys
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from scout_exam.models.admin_models import User
from scout_exam.models.question_model import Question
from scout_exam.models.session_state import StudentIdentity
from scout_exam.services.storage import DataStore, Repositories

CATEGORY = "كشافة ومرشدات"
OTHER_CATEGORY = "أشبال وزهرات"


def make_questions(n: int = 5, category: str = CATEGORY):
    """Alternating mcq (answer index 1) / truefalse (answer True)."""
    questions = []
    for i in range(n):
        if i % 2 == 0:
            questions.append(Question(
                id=f"q{i}", question=f"Question {i}", type="mcq",
                options=["A", "B", "C", "D"], correct_answer=1, category=category,
            ))
        else:
            questions.append(Question(
                id=f"q{i}", question=f"Question {i}", type="truefalse",
                correct_answer=True, category=category,
            ))
    return questions


class ListSink:
    """Result sink that only remembers what it received."""

    def __init__(self):
        self.results = []

    def append(self, result):
        self.results.append(result)


@pytest.fixture
def questions():
    return make_questions()


@pytest.fixture
def student():
    return StudentIdentity(code="1001", name="Mina", category=CATEGORY, church="St Mark")


@pytest.fixture
def sink():
    return ListSink()


@pytest.fixture
def repos():
    return Repositories(DataStore(None))


@pytest.fixture
def seeded_repos(repos):
    repos.users.add(User(code="1001", name="Mina", church="St Mark", category=CATEGORY,
                         password="secret1"))
    repos.users.add(User(code="1002", name="Mariam", church="St George", category=OTHER_CATEGORY,
                         password="secret2"))
    repos.questions.extend(make_questions())
    return repos
