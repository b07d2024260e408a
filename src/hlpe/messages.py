"""
Engine message protocol.

Host -> Engine:
    INIT     {batches, examHistory, userMetrics, studyHistory?}
    ANALYZE  {event: "exam_completed", data: ExamAttempt}
             {event: "mcq_added", data: Question}
             {event: "app_load"}

Engine -> Host:
    DATA_UPDATED       {updatedQuestions, updatedUserMetrics}
    ANALYSIS_COMPLETE  {predictedScore?, errorClusters?, studyPlan?, knowledgeGaps?, scoreTrend?}

Messages cross the boundary as plain dicts of the shape
``{"type": ..., "payload": ...}``.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from src.hlpe.errors import ProtocolError, SnapshotFormatError
from src.hlpe.models import (
    AnalysisSnapshot,
    ExamAttempt,
    Question,
    QuestionPatch,
    UserMetricsPatch,
    merge_patches,
    parse_records,
)


class MessageType(str, Enum):
    """Message types on both sides of the boundary."""

    INIT = "INIT"
    ANALYZE = "ANALYZE"
    DATA_UPDATED = "DATA_UPDATED"
    ANALYSIS_COMPLETE = "ANALYSIS_COMPLETE"


class AnalyzeEvent(str, Enum):
    """What prompted an ANALYZE request."""

    EXAM_COMPLETED = "exam_completed"
    MCQ_ADDED = "mcq_added"
    APP_LOAD = "app_load"


# ========================================
# Engine -> Host Models
# ========================================


class _WireModel(BaseModel):
    """Serializes with camelCase keys, accepts either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ErrorClusterEntry(_WireModel):
    name: Literal["Silly Mistake", "Knowledge Gap", "Conceptual"]
    count: int


class StudyPlanEntry(_WireModel):
    subject: str
    priority: float


class KnowledgeGapEntry(_WireModel):
    topic: str
    gap_score: float


class ScoreTrendEntry(_WireModel):
    date: str
    score: float
    ema: float


class AnalysisReport(_WireModel):
    """Read-only insights from one pass; absent fields mean "not enough data"."""

    predicted_score: float | None = None
    error_clusters: list[ErrorClusterEntry] | None = None
    study_plan: list[StudyPlanEntry] | None = None
    knowledge_gaps: list[KnowledgeGapEntry] | None = None
    score_trend: list[ScoreTrendEntry] | None = None


class DataUpdate(_WireModel):
    """Learner-state patches from one pass."""

    updated_questions: list[dict[str, Any]] = Field(default_factory=list)
    updated_user_metrics: dict[str, Any] = Field(default_factory=dict)


def envelope(message_type: MessageType, payload: _WireModel) -> dict[str, Any]:
    """Wrap a payload for delivery to the host."""
    return {"type": message_type.value, "payload": payload.to_wire()}


# ========================================
# Host -> Engine Parsing
# ========================================


class _HostEnvelope(BaseModel):
    type: MessageType
    payload: dict[str, Any] = Field(default_factory=dict)


class _AnalyzePayload(BaseModel):
    event: AnalyzeEvent
    data: dict[str, Any] | None = None


@dataclass
class InitCommand:
    snapshot: AnalysisSnapshot


@dataclass
class AnalyzeCommand:
    event: AnalyzeEvent
    exam: ExamAttempt | None = None
    question: Question | None = None


def parse_host_message(raw: Any) -> InitCommand | AnalyzeCommand:
    """
    Validate a host message and decode its payload.

    Raises:
        ProtocolError: unknown type/event, or an event without usable data
    """
    message_type = raw.get("type") if isinstance(raw, dict) else None
    try:
        message = _HostEnvelope.model_validate(raw)
    except ValidationError as exc:
        raise ProtocolError(message_type, f"invalid envelope ({exc.error_count()} errors)") from exc

    if message.type is MessageType.INIT:
        try:
            return InitCommand(snapshot=AnalysisSnapshot.from_payload(message.payload))
        except SnapshotFormatError as exc:
            raise ProtocolError(message_type, str(exc)) from exc

    if message.type is not MessageType.ANALYZE:
        raise ProtocolError(message_type, "not accepted by the engine")

    try:
        payload = _AnalyzePayload.model_validate(message.payload)
    except ValidationError as exc:
        raise ProtocolError(message_type, f"invalid analyze payload ({exc.error_count()} errors)") from exc

    try:
        if payload.event is AnalyzeEvent.EXAM_COMPLETED:
            return AnalyzeCommand(event=payload.event, exam=ExamAttempt.from_dict(payload.data))
        if payload.event is AnalyzeEvent.MCQ_ADDED:
            return AnalyzeCommand(event=payload.event, question=Question.from_dict(payload.data))
    except SnapshotFormatError as exc:
        raise ProtocolError(message_type, f"{payload.event.value}: {exc}") from exc

    return AnalyzeCommand(event=payload.event)


def apply_data_update(snapshot: AnalysisSnapshot, payload: dict[str, Any]) -> AnalysisSnapshot:
    """Apply a DATA_UPDATED payload to a host-side snapshot."""
    patches = parse_records(payload.get("updatedQuestions"), QuestionPatch.from_dict, "question patch")
    user_elo = (payload.get("updatedUserMetrics") or {}).get("userElo")
    return snapshot.apply_patches(patches, UserMetricsPatch(user_elo=user_elo))


def patch_stored_payload(stored: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
    """
    Apply a DATA_UPDATED payload to the host's stored JSON.

    Works on the raw records, so anything the engine could not parse is
    written back untouched. Returns a patched copy.
    """
    result = copy.deepcopy(stored)
    patches = {
        patch.id: patch
        for patch in merge_patches(
            parse_records(payload.get("updatedQuestions"), QuestionPatch.from_dict, "question patch")
        )
    }

    batches = result.get("batches")
    for batch in batches if isinstance(batches, list) else ():
        questions = batch.get("questions") if isinstance(batch, dict) else None
        for question in questions if isinstance(questions, list) else ():
            if not isinstance(question, dict) or str(question.get("id")) not in patches:
                continue
            changes = patches[str(question["id"])].to_dict()
            changes.pop("id")
            changes.pop("batchId")
            question.update(changes)

    metrics = payload.get("updatedUserMetrics") or {}
    if metrics:
        if not isinstance(result.get("userMetrics"), dict):
            result["userMetrics"] = {}
        result["userMetrics"].update(metrics)
    return result
