"""
betascope - Market beta and comparable-company analysis for Indian equities.

Usage:
    from betascope.pipeline import AnalysisRequest, BetaAnalysisPipeline

    request = AnalysisRequest.create("TCS", "NSE", "2020-01-01", "2025-01-01")
    result = await BetaAnalysisPipeline().analyze(request)
"""

__version__ = "0.1.0"
