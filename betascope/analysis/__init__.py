"""
Analysis module for storing and retrieving past beta searches.
"""

from .history import SearchRecord, AnalysisHistoryStorage

__all__ = [
    "SearchRecord",
    "AnalysisHistoryStorage",
]
