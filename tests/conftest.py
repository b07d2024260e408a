"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
Fixtures build records in the host's camelCase wire format so tests go
through the same parsing the engine uses.
"""
import pytest
import sys
from datetime import datetime, timezone
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.hlpe.models import AnalysisSnapshot  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (full pass, worker thread)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def now():
    """Fixed clock for review-date assertions."""
    return datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_question():
    """Factory for stored question records."""

    def _make(qid, batch_id="b1", **fields):
        data = {
            "id": qid,
            "batchId": batch_id,
            "question": f"Question {qid}",
            "explanation": "",
            "options": ["A", "B", "C", "D"],
            "answer": "A",
            "questionType": "MCQ",
            "lastAttemptCorrect": None,
            "srsLevel": 0,
        }
        data.update(fields)
        return data

    return _make


@pytest.fixture
def make_batch(make_question):
    """Factory for stored batch records."""

    def _make(batch_id="b1", subject="Medicine", questions=None, **fields):
        data = {
            "id": batch_id,
            "name": f"{subject} batch",
            "subject": subject,
            "chapter": "General",
            "platform": "Marrow",
            "createdAt": "2024-01-01T00:00:00Z",
            "questions": questions if questions is not None else [make_question("q1", batch_id)],
        }
        data.update(fields)
        return data

    return _make


@pytest.fixture
def make_exam():
    """
    Factory for stored exam attempts.

    ``results`` is a list of (question_record, is_correct) pairs.
    """

    def _make(exam_id="e1", results=(), created_at="2024-02-01T10:00:00Z", **fields):
        items = [
            {"questionData": question, "userAnswer": "A" if correct else "B", "isCorrect": correct}
            for question, correct in results
        ]
        correct_count = sum(1 for _, correct in results if correct)
        data = {
            "id": exam_id,
            "createdAt": created_at,
            "timeTaken": 60 * len(items),
            "config": {"questionCount": len(items), "durationMinutes": 2 * len(items)},
            "questions": items,
            "score": 100.0 * correct_count / len(items) if items else 0.0,
            "correctAnswers": correct_count,
            "totalQuestions": len(items),
        }
        data.update(fields)
        return data

    return _make


@pytest.fixture
def sample_payload(make_question, make_batch, make_exam):
    """INIT payload: two questions, one exam with one right and one wrong answer."""
    q1 = make_question("q1", "b1")
    q2 = make_question("q2", "b1")
    return {
        "batches": [make_batch("b1", questions=[q1, q2])],
        "examHistory": [make_exam("e1", results=[(q1, True), (q2, False)])],
        "userMetrics": {"userElo": 1000},
    }


@pytest.fixture
def sample_snapshot(sample_payload):
    """Parsed form of ``sample_payload``."""
    return AnalysisSnapshot.from_payload(sample_payload)
