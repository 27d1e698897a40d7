"""
Relay Suggest

AI-assisted conversion of signals into proposed tasks.

Key Components:
- ModelCascade: Ordered model fallback with explicit attempt classification
- SuggestionEngine: Prompting and strict response validation
"""

from .cascade import Attempt, CascadeOutcome, CascadeResult, ModelCascade, classify_failure
from .engine import SuggestionEngine, SuggestionResult, UserProfile

__all__ = [
    "Attempt",
    "CascadeOutcome",
    "CascadeResult",
    "ModelCascade",
    "classify_failure",
    "SuggestionEngine",
    "SuggestionResult",
    "UserProfile",
]
