"""Application records, observations and duplicate matching.

Public API:
- Observation: One unit of evidence extracted from an inbound message
- ApplicationRecord: The canonical job application record
- ApplicationStatus: Enum for application status values
- is_valid_transition: Status state-machine check
- find_match: Exact-then-fuzzy duplicate lookup
- ObservationLoader: YAML/JSON batch loading
"""

from apptrail.tracker.loader import ObservationLoader
from apptrail.tracker.matcher import find_match, jaccard_similarity
from apptrail.tracker.models import (
    ApplicationRecord,
    ApplicationStatus,
    ExtractionMethod,
    Observation,
    is_valid_transition,
)

__all__ = [
    "ApplicationRecord",
    "ApplicationStatus",
    "ExtractionMethod",
    "Observation",
    "ObservationLoader",
    "find_match",
    "is_valid_transition",
    "jaccard_similarity",
]
