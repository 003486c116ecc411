"""Risk scoring modules"""

from .scorer import RiskScorer

__all__ = ['RiskScorer']
