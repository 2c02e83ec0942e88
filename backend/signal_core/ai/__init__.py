"""Heuristic AI ensemble over analyzer outputs."""

from signal_core.ai.ensemble import (
    AIAnalysis,
    AIEnsemble,
    AIValidation,
    ChartPattern,
    MarketRegime,
    PatternRecognition,
    Prediction,
    ProbabilityEstimate,
)

__all__ = [
    "AIAnalysis",
    "AIEnsemble",
    "AIValidation",
    "ChartPattern",
    "MarketRegime",
    "PatternRecognition",
    "Prediction",
    "ProbabilityEstimate",
]
