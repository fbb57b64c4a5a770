"""Configuration for the dialogue memory engine."""

import os
from pathlib import Path

# Base data directory: durable tier, graph and vector cache live here
DATA_DIR = Path("data")
DB_PATH = DATA_DIR / "interactions.db"
GRAPH_DIR = DATA_DIR / "graph"
VECTOR_DIR = DATA_DIR / "vectors"

# Fast tier (shared across engine instances)
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")

ENGINE_CONFIG = {
    # Fast tier
    "namespace": "agent",
    "max_fast_tier_interactions": 10000,
    "recent_turns_size": 5,
    "interrupted_position_ttl": 300,
    "pattern_cache_ttl": 1800,
    "transition_queue_size": 50,
    "transition_queue_ttl": 3600,

    # Classification thresholds
    "continuation_threshold": 0.75,
    "strong_relatedness_threshold": 0.75,
    "moderate_relatedness_threshold": 0.40,
    "clarification_threshold": 0.30,
    "resumption_threshold": 0.4,
    "contradiction_topic_threshold": 0.3,
    "resumption_history_window": 20,
    "pattern_history_window": 10,
    "min_turn_length": 10,

    # Transitions
    "transition_memory": 10,
    "transition_pre_pause": 0.5,
    "transition_post_pause": 1.0,
    "stop_settle_delay": 0.5,
    "stop_final_delay": 0.2,

    # Memory store
    "recent_threshold": 20,
    "batch_size": 10,
    "batch_interval": 300,
    "dedup_prefix_length": 200,
    "history_limit": 10000,
    "summarize_turns": True,

    # Retrieval
    "retrieval_weights": {"time": 0.3, "topic": 0.3, "semantic": 0.3, "relation": 0.1},
    "retrieval_pool_size": 100,
    "retrieval_limit": 20,

    # Concept graph
    "graph_max_depth": 3,

    # Embeddings
    "embedding_provider": "api",  # api | local | none
    "api_embedding_model": "text-embedding-3-small",
    # Env var that must hold the provider key for api_embedding_model; None skips the check
    "api_embedding_key_env": "OPENAI_API_KEY",
    "text_embedding_model": "all-MiniLM-L6-v2",
    "embedding_cache_size": 1000,
    "embedding_max_chars": 8000,
    "circuit_breaker_threshold": 3,
    "circuit_breaker_timeout": 300,

    # Summarization
    "llm_model": "claude-sonnet-4-6",
    "llm_temperature": 0.2,
    "summary_max_words": 200,

    # Analytics
    "analytics_max_events": 1000,
    "analytics_event_ttl": 86400 * 30,
    "analytics_max_samples": 1000,
}
