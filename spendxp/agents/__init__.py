"""Advice agents package."""

from spendxp.agents.advice import (
    AdviceServiceFailure,
    AnalysisRateLimited,
    AnalystAgent,
    CoachAgent,
)

__all__ = [
    "AdviceServiceFailure",
    "AnalysisRateLimited",
    "AnalystAgent",
    "CoachAgent",
]
