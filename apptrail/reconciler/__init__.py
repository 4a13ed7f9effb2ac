"""Multi-source reconciliation of job application evidence.

Public API:
- ReconciliationEngine: Merge observations into a canonical record
- StatusClassifier: Rule tier plus optional AI tier
- TimelineBuilder: Per-observation status history and current status
- ClassificationContext: Caller-owned counters, budget and failure throttling
- StatusLLM: LiteLLM-backed text classification service
- ReconcilerConfig: Configuration settings
"""

from apptrail.reconciler.classifier import (
    ClassificationContext,
    FailureTracker,
    StatusClassifier,
)
from apptrail.reconciler.config import (
    ReconcilerConfig,
    get_reconciler_config,
    reset_reconciler_config,
)
from apptrail.reconciler.engine import EmptyObservationsError, ReconciliationEngine
from apptrail.reconciler.llm import StatusLLM, StatusLLMError
from apptrail.reconciler.models import (
    FieldChange,
    FieldProvenance,
    MergeReport,
    MergeResult,
    StatusAnalysis,
    StatusHistoryEntry,
    UpdateSuggestion,
)
from apptrail.reconciler.ports import MailSource, TextClassificationService
from apptrail.reconciler.rules import classify_by_rules
from apptrail.reconciler.timeline import TimelineBuilder

__all__ = [
    "ClassificationContext",
    "EmptyObservationsError",
    "FailureTracker",
    "FieldChange",
    "FieldProvenance",
    "MailSource",
    "MergeReport",
    "MergeResult",
    "ReconcilerConfig",
    "ReconciliationEngine",
    "StatusAnalysis",
    "StatusClassifier",
    "StatusHistoryEntry",
    "StatusLLM",
    "StatusLLMError",
    "TextClassificationService",
    "TimelineBuilder",
    "UpdateSuggestion",
    "classify_by_rules",
    "get_reconciler_config",
    "reset_reconciler_config",
]
