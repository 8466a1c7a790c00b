"""
Search history persistence layer.

Stores completed beta analyses so recent searches can be listed again
without refetching prices.
"""

import json
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog

from ..exceptions import AnalysisHistoryError

logger = structlog.get_logger(__name__)

_COLUMNS = "id, ticker, exchange, start_date, end_date, beta, peers, created_at"


@dataclass
class SearchRecord:
    """
    One stored analysis.

    Attributes:
        ticker: Subject ticker as analyzed (with exchange suffix)
        exchange: "NSE" or "BSE"
        start_date: ISO start of the analysis window
        end_date: ISO end of the analysis window
        beta: Subject beta
        peers: List of dicts with ticker, name, beta, sector,
            similarity_score and keywords
        id: Database ID (set after save)
        created_at: Record creation timestamp
    """

    ticker: str
    exchange: str
    start_date: str
    end_date: str
    beta: float
    peers: List[Dict[str, Any]] = field(default_factory=list)
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.ticker = self.ticker.strip().upper()
        if self.created_at is None:
            self.created_at = datetime.now()

    @classmethod
    def from_result(cls, result) -> "SearchRecord":
        """Build a record from an AnalysisResult."""
        peers = []
        for peer in result.peers:
            candidate = peer.peer.candidate
            peers.append({
                "ticker": candidate.ticker,
                "name": candidate.name or candidate.ticker,
                "beta": peer.beta,
                "sector": candidate.sector,
                "similarity_score": peer.peer.similarity_score,
                "keywords": sorted(peer.peer.keywords),
            })
        return cls(
            ticker=result.subject_ticker,
            exchange=result.exchange.value,
            start_date=result.start_date.isoformat(),
            end_date=result.end_date.isoformat(),
            beta=result.beta,
            peers=peers,
            created_at=result.generated_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ticker": self.ticker,
            "exchange": self.exchange,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "beta": self.beta,
            "peers": self.peers,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class AnalysisHistoryStorage:
    """
    Persistent storage for analysis results using SQLite.

    Example:
        >>> storage = AnalysisHistoryStorage("./data/beta_history.db")
        >>> search_id = storage.save_result(result)
        >>> recent = storage.get_recent_results(limit=10)
    """

    def __init__(self, db_path: str = "./data/beta_history.db"):
        """
        Initialize history storage.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = db_path
        self._connection = None

        # For in-memory databases, keep persistent connection
        if db_path == ":memory:":
            self._connection = sqlite3.connect(db_path, check_same_thread=False)

        self._init_database()
        logger.info("analysis_history_storage_initialized", db_path=self.db_path)

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection (reuse for in-memory DBs)."""
        if self._connection:
            return self._connection
        return sqlite3.connect(self.db_path)

    def _release(self, conn: Optional[sqlite3.Connection]) -> None:
        """Close per-call connections; the in-memory connection stays open."""
        if conn is not None and conn is not self._connection:
            conn.close()

    def _init_database(self) -> None:
        conn = None
        try:
            conn = self._get_connection()
            with conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS searches (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        ticker TEXT NOT NULL,
                        exchange TEXT NOT NULL,
                        start_date TEXT NOT NULL,
                        end_date TEXT NOT NULL,
                        beta REAL NOT NULL,
                        peers TEXT NOT NULL,
                        created_at TEXT NOT NULL
                    )
                """)
                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_searches_ticker
                    ON searches(ticker)
                """)
            logger.debug("analysis_history_schema_initialized")

        except sqlite3.Error as e:
            raise AnalysisHistoryError(
                "Failed to initialize analysis history database",
                details={"db_path": self.db_path},
                cause=e
            )
        finally:
            self._release(conn)

    def save_result(self, result) -> int:
        """
        Save an AnalysisResult.

        Returns:
            The database ID of the saved record

        Raises:
            AnalysisHistoryError: If save fails
        """
        return self.save_record(SearchRecord.from_result(result))

    def save_record(self, record: SearchRecord) -> int:
        conn = None
        try:
            conn = self._get_connection()
            with conn:
                cursor = conn.execute("""
                    INSERT INTO searches (
                        ticker, exchange, start_date, end_date, beta, peers, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (
                    record.ticker,
                    record.exchange,
                    record.start_date,
                    record.end_date,
                    record.beta,
                    json.dumps(record.peers),
                    record.created_at.isoformat(),
                ))
                search_id = cursor.lastrowid

            record.id = search_id
            logger.info("search_saved", id=search_id, ticker=record.ticker, peers=len(record.peers))
            return search_id

        except (sqlite3.Error, TypeError, ValueError) as e:
            raise AnalysisHistoryError(
                "Failed to save analysis",
                details={"ticker": record.ticker},
                cause=e
            )
        finally:
            self._release(conn)

    def _row_to_record(self, row: tuple) -> SearchRecord:
        return SearchRecord(
            id=row[0],
            ticker=row[1],
            exchange=row[2],
            start_date=row[3],
            end_date=row[4],
            beta=row[5],
            peers=json.loads(row[6]) if row[6] else [],
            created_at=datetime.fromisoformat(row[7]) if row[7] else None,
        )

    def get_recent_results(self, limit: int = 10) -> List[SearchRecord]:
        """
        Most recent searches first.

        Raises:
            AnalysisHistoryError: If the query fails
        """
        conn = None
        try:
            conn = self._get_connection()
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM searches ORDER BY created_at DESC, id DESC LIMIT ?",
                (limit,),
            ).fetchall()
            return [self._row_to_record(row) for row in rows]

        except sqlite3.Error as e:
            raise AnalysisHistoryError(
                "Failed to get recent searches",
                details={"limit": limit},
                cause=e
            )
        finally:
            self._release(conn)

    def get_by_ticker(self, ticker: str, limit: int = 10) -> List[SearchRecord]:
        """Searches for one ticker, most recent first."""
        conn = None
        try:
            conn = self._get_connection()
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM searches WHERE ticker = ? "
                "ORDER BY created_at DESC, id DESC LIMIT ?",
                (ticker.strip().upper(), limit),
            ).fetchall()
            return [self._row_to_record(row) for row in rows]

        except sqlite3.Error as e:
            raise AnalysisHistoryError(
                "Failed to get searches for ticker",
                details={"ticker": ticker},
                cause=e
            )
        finally:
            self._release(conn)

    def close(self) -> None:
        if self._connection:
            self._connection.close()
            self._connection = None
