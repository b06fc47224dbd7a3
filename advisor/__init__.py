"""
Advisory credit recommendations.

Suggests a point value and a short rationale for a faculty submission,
using an LLM when one is configured. Suggestions are never applied to the
ledger automatically.
"""

from .recommender import CreditRecommendation, CreditRecommender

__all__ = [
    "CreditRecommendation",
    "CreditRecommender",
]
