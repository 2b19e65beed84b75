"""Application services."""

from .analysis import RegionalAnalysisService, ResultsNotAccepted, build_analysis_service
from .status import StatusReporter

__all__ = [
    "RegionalAnalysisService",
    "ResultsNotAccepted",
    "StatusReporter",
    "build_analysis_service",
]
