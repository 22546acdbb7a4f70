"""
Feedback-driven re-ranking ("flywheel").

Learns from pins and dismissals without retraining any model:
- FeedbackStore: event log, derived indices, re-ranking, persistence
- FeedbackEvent / ChunkRef: the recorded interactions
"""

from .models import ChunkRef, FeedbackEvent, FeedbackEventType, chunk_key
from .persistence import FEEDBACK_FILENAME, FEEDBACK_FORMAT_VERSION
from .store import CO_PIN_THRESHOLD, FeedbackStore

__all__ = [
    "CO_PIN_THRESHOLD",
    "ChunkRef",
    "FEEDBACK_FILENAME",
    "FEEDBACK_FORMAT_VERSION",
    "FeedbackEvent",
    "FeedbackEventType",
    "FeedbackStore",
    "chunk_key",
]
