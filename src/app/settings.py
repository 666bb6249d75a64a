from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _as_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    metrics_enabled: bool = _as_bool(os.getenv("RAG_METRICS_ENABLED", "true"))
    ollama_base_url: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
    ollama_model: str = os.getenv("OLLAMA_MODEL", "qwen2.5:32b")
    ollama_temperature: float = float(os.getenv("OLLAMA_TEMPERATURE", "0.7"))
    ollama_timeout: float = float(os.getenv("OLLAMA_TIMEOUT", "0"))
    ollama_embedding_model: str = os.getenv("OLLAMA_EMBEDDING_MODEL", "nomic-embed-text")
    chat_invocation_mode: str = os.getenv("CHAT_INVOCATION_MODE", "call")
    chat_tools_disabled_models_raw: str = os.getenv("CHAT_TOOLS_DISABLED_MODELS", "deepseek-r1:32b")
    chat_max_tool_rounds: int = int(os.getenv("CHAT_MAX_TOOL_ROUNDS", "5"))
    chat_stream_delay_ms: int = int(os.getenv("CHAT_STREAM_DELAY_MS", "50"))
    chat_metrics_interval_seconds: float = float(os.getenv("CHAT_METRICS_INTERVAL_SECONDS", "60"))
    chat_log_content_chars: int = int(os.getenv("CHAT_LOG_CONTENT_CHARS", "200"))
    chat_history_api: str = os.getenv("CHAT_HISTORY_API", "http://localhost:8080/jeecg-boot")
    chat_history_page_size: int = int(os.getenv("CHAT_HISTORY_PAGE_SIZE", "30"))
    chat_history_timeout: float = float(os.getenv("CHAT_HISTORY_TIMEOUT", "10"))
    chat_template_key: str = os.getenv("CHAT_TEMPLATE_KEY", "SYSTEM_PROMPT_TEMPLATE")
    chat_system_template_raw: str = os.getenv("CHAT_SYSTEM_TEMPLATE", "")
    chat_tools_url_raw: str = os.getenv("CHAT_TOOLS_URL", "")
    chat_tools_timeout: float = float(os.getenv("CHAT_TOOLS_TIMEOUT", "10"))
    chat_tools_ping_seconds: float = float(os.getenv("CHAT_TOOLS_PING_SECONDS", "60"))
    vector_context_top_k: int = int(os.getenv("RAG_VECTOR_TOP_K", "4"))
    vectorstore_backend: str = os.getenv("RAG_VECTORSTORE", "memory")
    embedding_provider: str = os.getenv("EMBEDDING_PROVIDER", "hash")
    embedding_dimension: int = int(os.getenv("EMBEDDING_DIMENSION", "256"))
    milvus_uri: str = os.getenv("MILVUS_URI", "http://localhost:19530")
    milvus_token: str | None = os.getenv("MILVUS_TOKEN")
    milvus_collection: str = os.getenv("MILVUS_COLLECTION", "assistant_knowledge")
    milvus_consistency: str = os.getenv("MILVUS_CONSISTENCY", "Strong")
    milvus_index_type: str = os.getenv("MILVUS_INDEX_TYPE", "IVF_FLAT")
    milvus_metric_type: str = os.getenv("MILVUS_METRIC_TYPE", "COSINE")
    milvus_nlist: int = int(os.getenv("MILVUS_NLIST", "1024"))
    milvus_nprobe: int = int(os.getenv("MILVUS_NPROBE", "10"))
    milvus_hnsw_m: int = int(os.getenv("MILVUS_HNSW_M", "16"))
    milvus_hnsw_ef_construction: int = int(os.getenv("MILVUS_HNSW_EF_CONSTRUCTION", "200"))
    milvus_hnsw_ef: int = int(os.getenv("MILVUS_HNSW_EF", "64"))
    chunk_tokens: int = int(os.getenv("RAG_CHUNK_TOKENS", "200"))
    chunk_min_chars: int = int(os.getenv("RAG_CHUNK_MIN_CHARS", "200"))
    chunk_min_embed_chars: int = int(os.getenv("RAG_CHUNK_MIN_EMBED_CHARS", "5"))
    chunk_max_count: int = int(os.getenv("RAG_CHUNK_MAX_COUNT", "10000"))
    tokenizer_encoding: str = os.getenv("RAG_TOKENIZER_ENCODING", "cl100k_base")
    knowledge_scan_limit: int = int(os.getenv("RAG_KNOWLEDGE_SCAN_LIMIT", "1000"))
    knowledge_query_min_score: float = float(os.getenv("RAG_KNOWLEDGE_MIN_SCORE", "0.5"))
    file_fetch_timeout: float = float(os.getenv("RAG_FILE_FETCH_TIMEOUT", "30"))
    file_max_bytes: int = int(os.getenv("RAG_FILE_MAX_BYTES", "52428800"))

    @property
    def tools_disabled_models(self) -> frozenset[str]:
        raw = self.chat_tools_disabled_models_raw
        return frozenset(value.strip() for value in raw.split(",") if value.strip())

    @property
    def system_template(self) -> str | None:
        return self.chat_system_template_raw or None

    @property
    def tools_url(self) -> str | None:
        return self.chat_tools_url_raw.strip().rstrip("/") or None

    @property
    def stream_delay_seconds(self) -> float:
        return max(0, self.chat_stream_delay_ms) / 1000.0


settings = Settings()
