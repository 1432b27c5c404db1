# Scoring Module
from .fraud_scorer import FraudScorer, HIGH_FRAUD_SCORE

__all__ = ["FraudScorer", "HIGH_FRAUD_SCORE"]
