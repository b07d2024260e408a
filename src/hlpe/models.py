"""
HLPE Domain Models.

These records mirror the host application's persisted question bank and exam
history. The host stores them as camelCase JSON; every model has a
``from_dict`` that accepts that wire format and a ``to_dict`` that writes it
back, preserving fields the engine does not interpret.

Records are frozen. Learner-state changes are expressed as patches
(QuestionPatch, UserMetricsPatch) and applied to produce a new snapshot.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from functools import cached_property
from typing import Any, Callable, Iterable, Iterator, TypeVar

from loguru import logger

from src.hlpe.errors import SnapshotFormatError

T = TypeVar("T")

PLAIN_QUESTION_TYPE = "MCQ"

_TAG_STRIP = re.compile(r"[^a-z0-9]")


# =============================================================================
# Parsing Helpers
# =============================================================================


def normalize_tag(name: str) -> str:
    """Lower-case a tag and drop separators ("Case-Based" -> "casebased")."""
    return _TAG_STRIP.sub("", str(name).lower())


def parse_tags(raw: Any) -> frozenset[str]:
    """
    Normalize tags from either storage shape.

    Older records store a mapping of tag -> bool, newer ones a list of names.
    """
    if raw is None:
        return frozenset()
    if isinstance(raw, dict):
        return frozenset(normalize_tag(k) for k, enabled in raw.items() if enabled)
    if isinstance(raw, (list, tuple, set, frozenset)):
        return frozenset(normalize_tag(t) for t in raw if t)
    raise SnapshotFormatError("tags", f"unsupported tag container {type(raw).__name__}")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO timestamp; naive values are taken as UTC."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise SnapshotFormatError("timestamp", str(exc)) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up, as the host does."""
    return math.floor(value + 0.5)


def format_timestamp(value: datetime) -> str:
    """Render a timestamp the way the host stores them."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _require_dict(data: Any, kind: str) -> dict:
    if not isinstance(data, dict):
        raise SnapshotFormatError(kind, f"expected an object, got {type(data).__name__}")
    return data


def _require_id(data: dict, kind: str) -> str:
    record_id = data.get("id")
    if record_id in (None, ""):
        raise SnapshotFormatError(kind, "missing id")
    return str(record_id)


def _number(data: dict, key: str, kind: str, cast: Callable[[Any], T], default: T) -> T:
    value = data.get(key)
    if value is None:
        return default
    try:
        return cast(value)
    except (TypeError, ValueError) as exc:
        raise SnapshotFormatError(kind, f"{key}={value!r} is not numeric", data.get("id")) from exc


def _optional_number(data: dict, key: str, kind: str, cast: Callable[[Any], T]) -> T | None:
    return _number(data, key, kind, cast, None)


def parse_records(items: Iterable[Any] | None, parser: Callable[[Any], T], kind: str) -> tuple[T, ...]:
    """
    Parse a collection, skipping records that fail to parse.

    Partial analysis is preferred over rejecting the whole snapshot.
    """
    parsed: list[T] = []
    for raw in items or ():
        try:
            parsed.append(parser(raw))
        except SnapshotFormatError as exc:
            logger.warning("Skipping {}: {}", kind, exc)
    return tuple(parsed)


def _extras(data: dict, known: frozenset[str]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k not in known}


# =============================================================================
# Question Bank
# =============================================================================

_QUESTION_FIELDS = frozenset({
    "id", "batchId", "question", "explanation", "options", "answer", "questionType",
    "subject", "chapter", "platform", "lastAttemptCorrect", "elo", "srsLevel",
    "srsEasinessFactor", "srsInterval", "nextReviewDate",
})


@dataclass(frozen=True)
class Question:
    """A single MCQ and the learner's state for it."""

    id: str
    batch_id: str
    question: str = ""
    explanation: str = ""
    options: tuple[str, ...] = ()
    answer: str = ""
    question_type: str = PLAIN_QUESTION_TYPE
    subject: str = ""
    chapter: str = ""
    platform: str = ""
    tags: frozenset[str] = frozenset()

    # Learner state (None = never set)
    last_attempt_correct: bool | None = None
    elo: float | None = None
    srs_level: int | None = None
    srs_easiness_factor: float | None = None
    srs_interval: int | None = None
    next_review_date: str | None = None

    # Wire fields the engine does not interpret (difficulty, notes, raw tags...)
    extra: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
    # Known wire keys present in the stored record plus keys patched since (None = built in code)
    stored_keys: frozenset[str] | None = field(default=None, compare=False, repr=False)

    @property
    def is_attempted(self) -> bool:
        return self.last_attempt_correct is not None

    @property
    def is_hard(self) -> bool:
        return "hard" in self.tags

    @property
    def is_case_based(self) -> bool:
        return bool({"casebased", "case"} & self.tags) or self.question_type == "Case"

    @property
    def document(self) -> str:
        """Text used for term weighting."""
        return f"{self.question} {self.explanation}"

    def apply(self, patch: QuestionPatch) -> Question:
        """Return a copy with the patch's non-empty fields applied."""
        changes = patch.changes()
        stored_keys = self.stored_keys
        if stored_keys is not None:
            stored_keys = stored_keys | {_PATCH_WIRE_NAMES[name] for name in changes}
        return replace(self, **changes, stored_keys=stored_keys)

    @classmethod
    def from_dict(cls, data: Any, batch: dict | None = None) -> Question:
        """Create from the host's stored representation."""
        data = _require_dict(data, "question")
        question_id = _require_id(data, "question")
        batch = batch or {}
        kind = "question"

        last = data.get("lastAttemptCorrect")
        if last is not None and not isinstance(last, bool):
            raise SnapshotFormatError(kind, f"lastAttemptCorrect={last!r}", question_id)

        return cls(
            id=question_id,
            batch_id=str(data.get("batchId") or batch.get("id") or ""),
            question=str(data.get("question") or ""),
            explanation=str(data.get("explanation") or ""),
            options=tuple(str(o) for o in data.get("options") or ()),
            answer=str(data.get("answer") or ""),
            question_type=str(data.get("questionType") or PLAIN_QUESTION_TYPE),
            subject=str(data.get("subject") or batch.get("subject") or ""),
            chapter=str(data.get("chapter") or batch.get("chapter") or ""),
            platform=str(data.get("platform") or batch.get("platform") or ""),
            tags=parse_tags(data.get("tags")),
            last_attempt_correct=last,
            elo=_optional_number(data, "elo", kind, float),
            srs_level=_optional_number(data, "srsLevel", kind, int),
            srs_easiness_factor=_optional_number(data, "srsEasinessFactor", kind, float),
            srs_interval=_optional_number(data, "srsInterval", kind, int),
            next_review_date=data.get("nextReviewDate"),
            extra=_extras(data, _QUESTION_FIELDS),
            stored_keys=_QUESTION_FIELDS & frozenset(data),
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to the host's stored representation.

        A parsed record writes back the keys it was stored with plus any a
        patch set, so fields inherited from the batch stay on the batch. A
        record built in code writes every field that has a value.
        """
        values = {
            "id": self.id,
            "batchId": self.batch_id,
            "question": self.question,
            "explanation": self.explanation,
            "options": list(self.options),
            "answer": self.answer,
            "questionType": self.question_type,
            "subject": self.subject,
            "chapter": self.chapter,
            "platform": self.platform,
            "lastAttemptCorrect": self.last_attempt_correct,
            "elo": self.elo,
            "srsLevel": self.srs_level,
            "srsEasinessFactor": self.srs_easiness_factor,
            "srsInterval": self.srs_interval,
            "nextReviewDate": self.next_review_date,
        }
        data = dict(self.extra)
        if self.stored_keys is not None:
            data.update({k: v for k, v in values.items() if k in self.stored_keys})
        else:
            data.update({k: v for k, v in values.items() if v is not None and v != ""})
            if self.tags and "tags" not in data:
                data["tags"] = sorted(self.tags)
        return data


_BATCH_FIELDS = frozenset({"id", "name", "subject", "chapter", "platform", "createdAt", "questions"})


@dataclass(frozen=True)
class Batch:
    """A named collection of questions sharing subject/chapter/platform."""

    id: str
    name: str = ""
    subject: str = ""
    chapter: str = ""
    platform: str = ""
    created_at: str | None = None
    questions: tuple[Question, ...] = ()
    extra: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: Any) -> Batch:
        data = _require_dict(data, "batch")
        batch_id = _require_id(data, "batch")
        questions = parse_records(
            data.get("questions"),
            lambda raw: Question.from_dict(raw, batch=data),
            "question",
        )
        return cls(
            id=batch_id,
            name=str(data.get("name") or ""),
            subject=str(data.get("subject") or ""),
            chapter=str(data.get("chapter") or ""),
            platform=str(data.get("platform") or ""),
            created_at=data.get("createdAt"),
            questions=questions,
            extra=_extras(data, _BATCH_FIELDS),
        )

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "id": self.id,
            "name": self.name,
            "subject": self.subject,
            "chapter": self.chapter,
            "platform": self.platform,
            "createdAt": self.created_at,
            "questions": [q.to_dict() for q in self.questions],
        })
        return data


# =============================================================================
# Exam History
# =============================================================================


@dataclass(frozen=True)
class ExamConfig:
    """How an exam was set up."""

    question_count: int = 0
    duration_minutes: float = 0.0
    subjects: tuple[str, ...] = ()
    platforms: tuple[str, ...] = ()
    statuses: tuple[str, ...] = ()

    @property
    def per_question_budget(self) -> float | None:
        """Seconds allotted per question, or None when the config is unusable."""
        if self.question_count <= 0 or self.duration_minutes <= 0:
            return None
        return self.duration_minutes * 60 / self.question_count

    @classmethod
    def from_dict(cls, data: Any) -> ExamConfig:
        data = _require_dict(data or {}, "exam config")
        return cls(
            question_count=_number(data, "questionCount", "exam config", int, 0),
            duration_minutes=_number(data, "durationMinutes", "exam config", float, 0.0),
            subjects=tuple(data.get("subjects") or ()),
            platforms=tuple(data.get("platforms") or ()),
            statuses=tuple(data.get("statuses") or ()),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "questionCount": self.question_count,
            "durationMinutes": self.duration_minutes,
            "subjects": list(self.subjects),
            "platforms": list(self.platforms),
            "statuses": list(self.statuses),
        }


@dataclass(frozen=True)
class AttemptItem:
    """One question as answered inside an exam."""

    question: Question
    user_answer: str | None
    is_correct: bool

    @classmethod
    def from_dict(cls, data: Any) -> AttemptItem:
        data = _require_dict(data, "attempt item")
        return cls(
            question=Question.from_dict(data.get("questionData")),
            user_answer=data.get("userAnswer"),
            is_correct=bool(data.get("isCorrect")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "questionData": self.question.to_dict(),
            "userAnswer": self.user_answer,
            "isCorrect": self.is_correct,
        }


_EXAM_FIELDS = frozenset({
    "id", "createdAt", "timeTaken", "config", "questions", "score",
    "correctAnswers", "totalQuestions",
})


@dataclass(frozen=True)
class ExamAttempt:
    """A recorded exam session. Never mutated by the engine."""

    id: str
    created_at: datetime | None
    time_taken: float | None = None
    config: ExamConfig = field(default_factory=ExamConfig)
    items: tuple[AttemptItem, ...] = ()
    score: float = 0.0
    correct_answers: int = 0
    total_questions: int = 0
    extra: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def incorrect_items(self) -> list[AttemptItem]:
        return [item for item in self.items if not item.is_correct]

    @classmethod
    def from_dict(cls, data: Any) -> ExamAttempt:
        data = _require_dict(data, "exam")
        exam_id = _require_id(data, "exam")
        items = parse_records(data.get("questions"), AttemptItem.from_dict, "attempt item")
        return cls(
            id=exam_id,
            created_at=parse_timestamp(data.get("createdAt")),
            time_taken=_optional_number(data, "timeTaken", "exam", float),
            config=ExamConfig.from_dict(data.get("config")),
            items=items,
            score=_number(data, "score", "exam", float, 0.0),
            correct_answers=_number(data, "correctAnswers", "exam", int, 0),
            total_questions=_number(data, "totalQuestions", "exam", int, len(items)),
            extra=_extras(data, _EXAM_FIELDS),
        )

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "id": self.id,
            "createdAt": format_timestamp(self.created_at) if self.created_at else None,
            "timeTaken": self.time_taken,
            "config": self.config.to_dict(),
            "questions": [item.to_dict() for item in self.items],
            "score": self.score,
            "correctAnswers": self.correct_answers,
            "totalQuestions": self.total_questions,
        })
        return data


_STUDY_FIELDS = frozenset({"id", "createdAt", "score"})


@dataclass(frozen=True)
class StudySession:
    """A completed untimed study session (only its score matters here)."""

    id: str
    created_at: datetime | None
    score: float = 0.0
    extra: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: Any) -> StudySession:
        data = _require_dict(data, "study session")
        return cls(
            id=_require_id(data, "study session"),
            created_at=parse_timestamp(data.get("createdAt")),
            score=_number(data, "score", "study session", float, 0.0),
            extra=_extras(data, _STUDY_FIELDS),
        )

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "id": self.id,
            "createdAt": format_timestamp(self.created_at) if self.created_at else None,
            "score": self.score,
        })
        return data


@dataclass(frozen=True)
class UserMetrics:
    """Per-user learning metrics."""

    user_elo: float | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: Any) -> UserMetrics:
        data = _require_dict(data or {}, "user metrics")
        return cls(
            user_elo=_optional_number(data, "userElo", "user metrics", float),
            extra=_extras(data, frozenset({"userElo"})),
        )

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        if self.user_elo is not None:
            data["userElo"] = self.user_elo
        return data


# =============================================================================
# Patches
# =============================================================================

_PATCH_WIRE_NAMES = {
    "elo": "elo",
    "srs_level": "srsLevel",
    "srs_easiness_factor": "srsEasinessFactor",
    "srs_interval": "srsInterval",
    "next_review_date": "nextReviewDate",
    "last_attempt_correct": "lastAttemptCorrect",
}


@dataclass(frozen=True)
class QuestionPatch:
    """Partial update to a question's learner state."""

    id: str
    batch_id: str
    elo: float | None = None
    srs_level: int | None = None
    srs_easiness_factor: float | None = None
    srs_interval: int | None = None
    next_review_date: str | None = None
    last_attempt_correct: bool | None = None

    def changes(self) -> dict[str, Any]:
        """Fields this patch sets, keyed by Question attribute name."""
        return {
            name: getattr(self, name)
            for name in _PATCH_WIRE_NAMES
            if getattr(self, name) is not None
        }

    def merge(self, other: QuestionPatch) -> QuestionPatch:
        """Combine two patches for the same question; ``other`` wins on overlap."""
        if other.id != self.id:
            raise ValueError(f"Cannot merge patches for {self.id} and {other.id}")
        return replace(self, **other.changes())

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "batchId": self.batch_id}
        for name, value in self.changes().items():
            data[_PATCH_WIRE_NAMES[name]] = value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> QuestionPatch:
        data = _require_dict(data, "question patch")
        kwargs = {name: data.get(wire) for name, wire in _PATCH_WIRE_NAMES.items()}
        return cls(id=_require_id(data, "question patch"), batch_id=str(data.get("batchId") or ""), **kwargs)


@dataclass(frozen=True)
class UserMetricsPatch:
    """Partial update to the user's metrics."""

    user_elo: int | None = None

    @property
    def is_empty(self) -> bool:
        return self.user_elo is None

    def to_dict(self) -> dict[str, Any]:
        return {} if self.user_elo is None else {"userElo": self.user_elo}


def merge_patches(*groups: Iterable[QuestionPatch]) -> list[QuestionPatch]:
    """Merge patch lists per question id, keeping first-seen order."""
    merged: dict[str, QuestionPatch] = {}
    for group in groups:
        for patch in group:
            merged[patch.id] = merged[patch.id].merge(patch) if patch.id in merged else patch
    return list(merged.values())


# =============================================================================
# Snapshot
# =============================================================================


@dataclass(frozen=True)
class AnalysisSnapshot:
    """
    The engine's working set between triggers.

    ``exam_history[0]`` is always the most recent attempt.
    """

    user_metrics: UserMetrics = field(default_factory=UserMetrics)
    batches: tuple[Batch, ...] = ()
    exam_history: tuple[ExamAttempt, ...] = ()
    study_history: tuple[StudySession, ...] = ()

    @cached_property
    def _question_index(self) -> dict[str, Question]:
        return {q.id: q for q in self.iter_questions()}

    def iter_questions(self) -> Iterator[Question]:
        for batch in self.batches:
            yield from batch.questions

    @property
    def questions(self) -> list[Question]:
        return list(self.iter_questions())

    def find_question(self, question_id: str) -> Question | None:
        return self._question_index.get(question_id)

    @property
    def latest_exam(self) -> ExamAttempt | None:
        return self.exam_history[0] if self.exam_history else None

    def with_exam(self, attempt: ExamAttempt) -> AnalysisSnapshot:
        """Return a snapshot with ``attempt`` as the most recent exam."""
        return replace(self, exam_history=(attempt, *self.exam_history))

    def with_question(self, question: Question) -> AnalysisSnapshot | None:
        """Return a snapshot with ``question`` appended to its batch, or None if no batch owns it."""
        for index, batch in enumerate(self.batches):
            if batch.id == question.batch_id:
                updated = replace(batch, questions=(*batch.questions, question))
                batches = (*self.batches[:index], updated, *self.batches[index + 1:])
                return replace(self, batches=batches)
        return None

    def apply_patches(
        self,
        question_patches: Iterable[QuestionPatch] = (),
        user_patch: UserMetricsPatch | None = None,
    ) -> AnalysisSnapshot:
        """Produce the next snapshot version with the given patches applied."""
        by_id = {p.id: p for p in merge_patches(question_patches)}
        batches = self.batches
        if by_id:
            batches = tuple(
                replace(
                    batch,
                    questions=tuple(
                        q.apply(by_id[q.id]) if q.id in by_id else q for q in batch.questions
                    ),
                )
                for batch in self.batches
            )
        metrics = self.user_metrics
        if user_patch is not None and not user_patch.is_empty:
            metrics = replace(metrics, user_elo=user_patch.user_elo)
        return replace(self, batches=batches, user_metrics=metrics)

    @classmethod
    def from_payload(cls, payload: Any) -> AnalysisSnapshot:
        """Build from an INIT payload (``batches``, ``examHistory``, ``userMetrics``, ``studyHistory``)."""
        payload = _require_dict(payload or {}, "snapshot")
        try:
            metrics = UserMetrics.from_dict(payload.get("userMetrics"))
        except SnapshotFormatError as exc:
            logger.warning("Resetting user metrics: {}", exc)
            metrics = UserMetrics()
        return cls(
            user_metrics=metrics,
            batches=parse_records(payload.get("batches"), Batch.from_dict, "batch"),
            exam_history=parse_records(payload.get("examHistory"), ExamAttempt.from_dict, "exam"),
            study_history=parse_records(payload.get("studyHistory"), StudySession.from_dict, "study session"),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "userMetrics": self.user_metrics.to_dict(),
            "batches": [b.to_dict() for b in self.batches],
            "examHistory": [e.to_dict() for e in self.exam_history],
            "studyHistory": [s.to_dict() for s in self.study_history],
        }
