"""
Example usage of the beta analysis pipeline.

Computes a stock's beta against its exchange benchmark, ranks comparable
companies and prints a markdown report.
"""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from betascope.analysis import AnalysisHistoryStorage
from betascope.config import config
from betascope.exceptions import AnalysisError, DataValidationError, TickerValidationError
from betascope.peers.visualizer import format_analysis_report
from betascope.pipeline import AnalysisRequest, BetaAnalysisPipeline


async def basic_beta_analysis(ticker: str, exchange: str, start: str, end: str):
    """Run one analysis and print the report."""
    print(f"\n{'='*80}")
    print(f"Beta Analysis for {ticker} ({exchange})")
    print(f"{'='*80}\n")

    try:
        request = AnalysisRequest.create(ticker, exchange, start, end)
    except (TickerValidationError, DataValidationError) as e:
        print(f"✗ Invalid request: {e}")
        return

    history = AnalysisHistoryStorage(config.history_db_path) if config.enable_history else None
    pipeline = BetaAnalysisPipeline(history=history)

    try:
        result = await pipeline.analyze(request)
    except AnalysisError as e:
        print(f"✗ Analysis failed: {e}")
        return

    print(format_analysis_report(result))

    if history is not None:
        print("Recent searches:")
        for record in history.get_recent_results(limit=5):
            print(f"  {record.created_at:%Y-%m-%d %H:%M}  {record.ticker:<14} beta={record.beta:.2f}")


async def main():
    """Main entry point for examples."""
    await basic_beta_analysis("TCS", "NSE", "2020-01-01", "2025-01-01")

    # BSE listing, benchmarked against SENSEX
    # await basic_beta_analysis("RELIANCE", "BSE", "2021-01-01", "2025-01-01")


if __name__ == "__main__":
    asyncio.run(main())
