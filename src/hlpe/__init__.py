"""
HLPE - learning/analytics engine for the exam question bank.

Components:
- models: Question, Batch, ExamAttempt, UserMetrics, AnalysisSnapshot, patches
- rating: Elo skill/difficulty updates
- scheduler: SM-2 review scheduling
- clustering: k-means grouping of incorrect answers
- prioritizer: weighted study plan
- gaps: TF-IDF knowledge-gap scoring
- trend: EMA score trend
- predictor: predicted exam score
- engine: one full analysis pass
- orchestrator / worker: message-driven state machine on a background thread
"""

from src.hlpe.engine import EngineConfig, PassResult, run_full_pass
from src.hlpe.errors import HlpeError, ProtocolError, SnapshotFormatError
from src.hlpe.messages import (
    AnalysisReport,
    AnalyzeEvent,
    DataUpdate,
    MessageType,
    apply_data_update,
    patch_stored_payload,
)
from src.hlpe.models import (
    AnalysisSnapshot,
    Batch,
    ExamAttempt,
    Question,
    QuestionPatch,
    UserMetrics,
    UserMetricsPatch,
)
from src.hlpe.orchestrator import EngineState, HlpeOrchestrator
from src.hlpe.worker import HlpeWorker, start_worker

__all__ = [
    # Models
    "AnalysisSnapshot",
    "Batch",
    "ExamAttempt",
    "Question",
    "QuestionPatch",
    "UserMetrics",
    "UserMetricsPatch",
    # Messages
    "AnalysisReport",
    "AnalyzeEvent",
    "DataUpdate",
    "MessageType",
    "apply_data_update",
    "patch_stored_payload",
    # Engine
    "EngineConfig",
    "PassResult",
    "run_full_pass",
    "EngineState",
    "HlpeOrchestrator",
    "HlpeWorker",
    "start_worker",
    # Errors
    "HlpeError",
    "ProtocolError",
    "SnapshotFormatError",
]
