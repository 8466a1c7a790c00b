from dataclasses import dataclass
from pathlib import Path
import os
from dotenv import load_dotenv
import logging
import sys
from typing import Optional
import structlog

from betascope.exceptions import ConfigurationError

# Load environment variables early
load_dotenv()

# Step 1: Configure stdlib logging to use stderr
logging.basicConfig(
    format='%(asctime)s [%(levelname)-8s] %(message)s',
    stream=sys.stderr,
    level=logging.INFO,
    force=True
)

# Step 2: Configure structlog
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.KeyValueRenderer(key_order=['timestamp', 'level', 'event']),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = logging.getLogger(__name__)


def _get_env_var(var: str, required: bool = True, default: Optional[str] = None) -> str:
    """Get environment variable with validation."""
    value = os.environ.get(var, default)
    if required and not value:
        logger.error(f"Missing required environment variable: {var}")
        return ""
    return value or ""


def _env_flag(var: str, default: str) -> bool:
    return os.environ.get(var, default).lower() == "true"


def llm_available() -> bool:
    """True when a Google API key is present for keyword/embedding calls."""
    return bool(_get_env_var("GOOGLE_API_KEY", required=False))


@dataclass
class Config:
    """Configuration for the beta and peer analysis pipeline."""

    # LLM-backed keyword extraction and optional embeddings
    keyword_model: str = os.environ.get("KEYWORD_MODEL", "gemini-2.5-flash")
    embedding_model: str = os.environ.get("EMBEDDING_MODEL", "models/text-embedding-004")
    enable_keyword_llm: bool = _env_flag("ENABLE_KEYWORD_LLM", "true")
    enable_embeddings: bool = _env_flag("ENABLE_EMBEDDINGS", "false")
    embedding_weight: float = float(os.environ.get("EMBEDDING_WEIGHT", "0.3"))
    gemini_rpm_limit: int = int(os.environ.get("GEMINI_RPM_LIMIT", "15"))

    # Per external call / whole request, in seconds
    fetch_timeout: int = int(os.environ.get("FETCH_TIMEOUT", "15"))
    request_deadline_seconds: int = int(os.environ.get("REQUEST_DEADLINE_SECONDS", "120"))
    max_concurrent_fetches: int = int(os.environ.get("MAX_CONCURRENT_FETCHES", "8"))

    # Peer discovery and ranking
    min_peer_candidates: int = int(os.environ.get("MIN_PEER_CANDIDATES", "3"))
    max_peer_candidates: int = int(os.environ.get("MAX_PEER_CANDIDATES", "10"))
    screener_max_peers: int = int(os.environ.get("SCREENER_MAX_PEERS", "5"))
    top_peers: int = int(os.environ.get("TOP_PEERS", "5"))
    min_summary_length: int = int(os.environ.get("MIN_SUMMARY_LENGTH", "200"))
    keyword_set_size: int = int(os.environ.get("KEYWORD_SET_SIZE", "5"))

    # Search history
    enable_history: bool = _env_flag("ENABLE_HISTORY", "true")
    history_db_path: str = os.environ.get("HISTORY_DB_PATH", "./data/beta_history.db")

    log_level: str = os.environ.get("LOG_LEVEL", "INFO")

    def __post_init__(self):
        if not 0.0 <= self.embedding_weight <= 1.0:
            raise ConfigurationError(
                f"EMBEDDING_WEIGHT must be within [0, 1], got {self.embedding_weight}",
                config_key="EMBEDDING_WEIGHT",
                expected="0.0 <= weight <= 1.0",
            )
        if self.min_peer_candidates > self.max_peer_candidates:
            raise ConfigurationError(
                "MIN_PEER_CANDIDATES cannot exceed MAX_PEER_CANDIDATES",
                config_key="MIN_PEER_CANDIDATES",
            )

        if self.enable_history and self.history_db_path != ":memory:":
            Path(self.history_db_path).parent.mkdir(parents=True, exist_ok=True)

        # Set logging level
        log_level = getattr(logging, self.log_level.upper(), logging.INFO)
        logging.getLogger().setLevel(log_level)
        for name in logging.root.manager.loggerDict:
            logging.getLogger(name).setLevel(log_level)


config = Config()
