"""
Unit tests for search history persistence.

Tests cover:
- Saving records and reading them back
- Recent-first ordering and limits
- Lookup by ticker
- Error wrapping
"""

import sqlite3
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from betascope.analysis.history import AnalysisHistoryStorage, SearchRecord
from betascope.exceptions import AnalysisHistoryError


@pytest.fixture
def storage():
    store = AnalysisHistoryStorage(":memory:")
    yield store
    store.close()


def record(ticker="TCS.NS", beta=0.85, minutes_ago=0, peers=None):
    return SearchRecord(
        ticker=ticker,
        exchange="NSE",
        start_date="2020-01-01",
        end_date="2025-01-01",
        beta=beta,
        peers=peers if peers is not None else [
            {"ticker": "INFY.NS", "name": "Infosys Limited", "beta": 0.92,
             "sector": "Technology", "similarity_score": 58.0, "keywords": ["cloud", "consulting"]},
        ],
        created_at=datetime(2025, 1, 1, 12, 0) - timedelta(minutes=minutes_ago),
    )


class TestSearchRecord:
    """Tests for the record dataclass."""

    def test_ticker_is_normalized(self):
        assert record(ticker=" tcs.ns ").ticker == "TCS.NS"

    def test_created_at_defaults_to_now(self):
        rec = SearchRecord(ticker="TCS.NS", exchange="NSE", start_date="2020-01-01",
                           end_date="2025-01-01", beta=1.0)

        assert rec.created_at is not None
        assert rec.peers == []

    def test_to_dict(self):
        data = record().to_dict()

        assert data["ticker"] == "TCS.NS"
        assert data["created_at"] == "2025-01-01T12:00:00"
        assert data["peers"][0]["name"] == "Infosys Limited"


class TestAnalysisHistoryStorage:
    """Tests for the SQLite store."""

    def test_save_and_read_back(self, storage):
        search_id = storage.save_record(record())

        results = storage.get_recent_results()

        assert search_id == 1
        assert len(results) == 1
        saved = results[0]
        assert saved.id == 1
        assert saved.beta == pytest.approx(0.85)
        assert saved.peers[0]["keywords"] == ["cloud", "consulting"]
        assert saved.created_at == datetime(2025, 1, 1, 12, 0)

    def test_recent_first_with_limit(self, storage):
        for i, ticker in enumerate(["A.NS", "B.NS", "C.NS"]):
            storage.save_record(record(ticker=ticker, minutes_ago=10 - i))

        results = storage.get_recent_results(limit=2)

        assert [r.ticker for r in results] == ["C.NS", "B.NS"]

    def test_default_limit_is_ten(self, storage):
        for i in range(12):
            storage.save_record(record(ticker=f"T{i}.NS", minutes_ago=i))

        assert len(storage.get_recent_results()) == 10

    def test_get_by_ticker(self, storage):
        storage.save_record(record(ticker="TCS.NS", beta=0.8, minutes_ago=5))
        storage.save_record(record(ticker="INFY.NS", beta=0.9))
        storage.save_record(record(ticker="TCS.NS", beta=0.7))

        results = storage.get_by_ticker("tcs.ns")

        assert [r.beta for r in results] == [pytest.approx(0.7), pytest.approx(0.8)]

    def test_empty_peers_round_trip(self, storage):
        storage.save_record(record(peers=[]))

        assert storage.get_recent_results()[0].peers == []

    def test_unserializable_peers_raise(self, storage):
        with pytest.raises(AnalysisHistoryError):
            storage.save_record(record(peers=[{"ticker": "X", "beta": object()}]))

    def test_file_database(self, tmp_path):
        db_path = str(tmp_path / "history.db")
        AnalysisHistoryStorage(db_path).save_record(record())

        reopened = AnalysisHistoryStorage(db_path)

        assert reopened.get_recent_results()[0].ticker == "TCS.NS"

    def test_file_database_connections_are_closed(self, tmp_path):
        opened = []
        real_connect = sqlite3.connect

        def tracking_connect(*args, **kwargs):
            conn = real_connect(*args, **kwargs)
            opened.append(conn)
            return conn

        with patch("betascope.analysis.history.sqlite3.connect", side_effect=tracking_connect):
            store = AnalysisHistoryStorage(str(tmp_path / "history.db"))
            store.save_record(record())
            store.get_recent_results()
            store.get_by_ticker("TCS.NS")

        assert len(opened) == 4
        for conn in opened:
            with pytest.raises(sqlite3.ProgrammingError):
                conn.execute("SELECT 1")

    def test_memory_connection_stays_open(self, storage):
        storage.save_record(record())

        assert storage.get_recent_results()[0].ticker == "TCS.NS"
        assert storage._connection.execute("SELECT COUNT(*) FROM searches").fetchone() == (1,)

    def test_unusable_path_raises(self, tmp_path):
        with pytest.raises(AnalysisHistoryError):
            AnalysisHistoryStorage(str(tmp_path / "missing" / "dir" / "history.db"))
