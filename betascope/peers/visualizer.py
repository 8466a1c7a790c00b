"""
Beta Report Visualizer - Tables and markdown reports for beta analyses.

Formats an AnalysisResult for display layers (CLI, notebooks, web pages).
"""

import structlog
from typing import Any, Dict, List, Optional

logger = structlog.get_logger(__name__)

PEER_TABLE_HEADERS = ["Ticker", "Name", "Sector", "Beta", "Similarity", "Confidence", "Keywords"]


def _format_number(value: Optional[float], digits: int = 2, suffix: str = "") -> str:
    if value is None:
        return "N/A"
    return f"{value:.{digits}f}{suffix}"


def _format_percent(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    return f"{value * 100:.1f}%"


def describe_beta(beta: float) -> str:
    """Plain-language reading of a beta value."""
    if beta < 0:
        return "moves against the market"
    if beta < 0.8:
        return "defensive (less volatile than the market)"
    if beta <= 1.2:
        return "moves broadly in line with the market"
    return "aggressive (more volatile than the market)"


def generate_peer_table(result) -> Dict[str, Any]:
    """
    Generate a tabular view of the ranked peers.

    Returns:
        {
            "headers": ["Ticker", "Name", ...],
            "rows": [["INFY.NS", "Infosys Limited", "Technology", "0.92", "58.0", "High", "it services, consulting"], ...],
            "focus_ticker": "TCS.NS",
            "focus_beta": "0.81",
            "market_index": "NIFTY 50",
        }

    Example:
        table = generate_peer_table(result)
        df = pd.DataFrame(table["rows"], columns=table["headers"])
    """
    rows: List[List[str]] = []
    for peer in result.peers:
        candidate = peer.peer.candidate
        rows.append([
            candidate.ticker,
            candidate.name or candidate.ticker,
            candidate.sector or "N/A",
            _format_number(peer.beta) if peer.result else f"N/A ({peer.error or 'no data'})",
            _format_number(peer.peer.similarity_score, 1),
            peer.peer.confidence_tier.value,
            ", ".join(sorted(peer.peer.keywords)),
        ])

    table = {
        "headers": list(PEER_TABLE_HEADERS),
        "rows": rows,
        "focus_ticker": result.subject_ticker,
        "focus_beta": _format_number(result.beta),
        "market_index": result.market_index_name,
    }
    logger.debug("peer_table_generated", ticker=result.subject_ticker, rows=len(rows))
    return table


def format_analysis_report(result, include_keywords: bool = True) -> str:
    """
    Generate a markdown report for one analysis.

    Example:
        report = format_analysis_report(result)
        Path("TCS_beta.md").write_text(report)
    """
    name = result.subject_name or result.subject_ticker
    lines = [
        f"# Beta Report: {name} ({result.subject_ticker})",
        "",
        f"**Benchmark:** {result.market_index_name} ({result.market_index_ticker})",
        f"**Period:** {result.start_date.isoformat()} to {result.end_date.isoformat()}",
        f"**Generated:** {result.generated_at.strftime('%Y-%m-%d %H:%M:%S')}",
        "",
        "## Market Sensitivity",
        "",
        f"- Beta: **{result.beta:.2f}**, {describe_beta(result.beta)}",
        f"- Alpha (daily): {_format_number(result.alpha, 5)}",
        f"- Correlation: {_format_number(result.correlation, 2)}",
        f"- R-squared: {_format_number(result.r_squared, 2)}",
        f"- Annualized volatility: {_format_percent(result.volatility)}",
        f"- Observations: {result.observations}",
        "",
    ]

    if result.sector or result.industry:
        lines.append(f"**Sector / Industry:** {result.sector or 'N/A'} / {result.industry or 'N/A'}")
        lines.append("")

    lines.append("## Comparable Companies")
    lines.append("")
    if not result.peers:
        lines.append("No comparable companies with usable price data were found.")
    else:
        table = generate_peer_table(result)
        headers = table["headers"] if include_keywords else table["headers"][:-1]
        lines.append("| " + " | ".join(headers) + " |")
        lines.append("|" + "|".join("---" for _ in headers) + "|")
        for row in table["rows"]:
            cells = row if include_keywords else row[:-1]
            lines.append("| " + " | ".join(cells) + " |")

        betas = [p.beta for p in result.peers if p.beta is not None]
        if betas:
            average = sum(betas) / len(betas)
            lines.append("")
            lines.append(f"Peer average beta: {average:.2f} (subject {result.beta:.2f})")

    lines.append("")
    report = "\n".join(lines)
    logger.info("analysis_report_formatted", ticker=result.subject_ticker, lines=len(lines))
    return report
