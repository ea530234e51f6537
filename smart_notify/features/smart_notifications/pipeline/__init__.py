"""
Pipeline stages for smart notifications.

Each stage takes its collaborators through its constructor and defaults to
the shared repositories and clients, so the orchestrator can be assembled
from fakes in tests.
"""

from .collector import UnreadMessageCollector
from .context_assembler import ContextAssembler
from .decision_cache import DecisionCache, cache_key
from .delivery import DeliveryDispatcher, build_push_payload, presentation_for_priority
from .fallback import fallback_decision
from .journal import DecisionJournal
from .quiet_hours import is_in_quiet_hours
from .reasoning import ReasoningEngine, validate_reasoning_output
from .semantic_index import SemanticIndex, cosine_similarity
from .suppression import ActivityTracker, DeliverySuppressor

__all__ = [
    "ActivityTracker",
    "ContextAssembler",
    "DecisionCache",
    "DecisionJournal",
    "DeliveryDispatcher",
    "DeliverySuppressor",
    "ReasoningEngine",
    "SemanticIndex",
    "UnreadMessageCollector",
    "build_push_payload",
    "cache_key",
    "cosine_similarity",
    "fallback_decision",
    "is_in_quiet_hours",
    "presentation_for_priority",
    "validate_reasoning_output",
]
