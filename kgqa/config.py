"""Configuration with sensible defaults (no external services required)."""

from dataclasses import dataclass, field
from os import getenv


def _parse_bool(value: str, default: bool = True) -> bool:
    """Parse boolean from environment variable."""
    if not value:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_float(value: str, default: float) -> float:
    """Parse float from environment variable."""
    try:
        return float(value) if value else default
    except ValueError:
        return default


def _parse_int(value: str, default: int) -> int:
    """Parse int from environment variable."""
    try:
        return int(value) if value else default
    except ValueError:
        return default


def _parse_thresholds(value: str, default: tuple[float, float, float]) -> tuple[float, float, float]:
    """Parse three ascending comma-separated floats, e.g. "0.3,0.6,0.8"."""
    if not value:
        return default
    try:
        parts = tuple(float(p) for p in value.split(","))
    except ValueError:
        return default
    if len(parts) != 3 or list(parts) != sorted(parts):
        return default
    return parts


@dataclass(slots=True, frozen=True)
class Config:
    # ==================== Neo4j (empty password = graph disabled) ====================
    neo4j_uri: str = field(default_factory=lambda: getenv("NEO4J_URI", "bolt://localhost:7687"))
    neo4j_username: str = field(default_factory=lambda: getenv("NEO4J_USERNAME", "neo4j"))
    neo4j_password: str = field(default_factory=lambda: getenv("NEO4J_PASSWORD", ""))
    neo4j_database: str = field(default_factory=lambda: getenv("NEO4J_DATABASE", "neo4j"))

    # ==================== LLM translators ====================
    # Provider: auto, claude, openai
    llm_provider: str = field(default_factory=lambda: getenv("LLM_PROVIDER", "auto"))
    llm_model: str = field(default_factory=lambda: getenv("LLM_MODEL", ""))
    anthropic_api_key: str = field(default_factory=lambda: getenv("ANTHROPIC_API_KEY", ""))
    openai_api_key: str = field(default_factory=lambda: getenv("OPENAI_API_KEY", ""))
    llm_temperature: float = field(
        default_factory=lambda: _parse_float(getenv("LLM_TEMPERATURE", ""), 0.2)
    )

    # ==================== Orchestration ====================
    cache_max_entries: int = field(
        default_factory=lambda: _parse_int(getenv("CACHE_MAX_ENTRIES", ""), 100)
    )
    # Upper bounds for template-first / progressive / hybrid-parallel
    strategy_thresholds: tuple[float, float, float] = field(
        default_factory=lambda: _parse_thresholds(getenv("STRATEGY_THRESHOLDS", ""), (0.3, 0.6, 0.8))
    )
    nlp_confidence_threshold: float = field(
        default_factory=lambda: _parse_float(getenv("NLP_CONFIDENCE_THRESHOLD", ""), 0.3)
    )
    default_max_retries: int = field(
        default_factory=lambda: _parse_int(getenv("DEFAULT_MAX_RETRIES", ""), 2)
    )
    qa_retry_backoff: float = field(
        default_factory=lambda: _parse_float(getenv("QA_RETRY_BACKOFF", ""), 1.0)
    )
    qa_top_k: int = field(default_factory=lambda: _parse_int(getenv("QA_TOP_K", ""), 10))

    # ==================== Feature Flags ====================
    enable_direct_translate: bool = field(
        default_factory=lambda: _parse_bool(getenv("ENABLE_DIRECT_TRANSLATE", ""), True)
    )
    enable_schema_qa: bool = field(
        default_factory=lambda: _parse_bool(getenv("ENABLE_SCHEMA_QA", ""), True)
    )

    log_level: str = field(default_factory=lambda: getenv("LOG_LEVEL", "INFO"))

    def is_graph_configured(self) -> bool:
        """Check if Neo4j credentials are present."""
        return bool(self.neo4j_uri and self.neo4j_password)

    def get_orchestrator_config(self) -> dict:
        """Get the settings consumed by QueryOrchestrator."""
        return {
            "strategy_thresholds": self.strategy_thresholds,
            "nlp_confidence_threshold": self.nlp_confidence_threshold,
            "default_max_retries": self.default_max_retries,
        }


cfg = Config()
