from __future__ import annotations

from functools import lru_cache

from src.app.chat import ChatPipeline
from src.app.metrics import RequestMetrics
from src.app.settings import settings
from src.app.supervisor import FailureEscalator
from src.loaders.chunking import TokenTextSplitter
from src.loaders.remote import RemoteDocumentFetcher
from src.rag.context import ChatHistoryProvider, SystemTemplateProvider, VectorContextProvider
from src.rag.embeddings import EmbeddingProvider, build_embedder
from src.rag.knowledge import KnowledgeBase
from src.rag.llm import ModelInvoker, OllamaChatModel
from src.rag.prompt import PromptAssembler
from src.rag.streaming import ResponseStreamer
from src.rag.tools import ToolCatalog
from src.vectorstore.inmemory import InMemoryVectorStore
from src.vectorstore.milvus import MilvusConfig, MilvusVectorStore


@lru_cache
def get_metrics() -> RequestMetrics:
    return RequestMetrics()


@lru_cache
def get_supervisor() -> FailureEscalator:
    return FailureEscalator()


@lru_cache
def get_tool_catalog() -> ToolCatalog:
    return ToolCatalog(base_url=settings.tools_url, timeout=settings.chat_tools_timeout)


@lru_cache
def get_vectorstore() -> InMemoryVectorStore | MilvusVectorStore:
    return build_vectorstore(build_knowledge_embedder())


@lru_cache
def get_knowledge_base() -> KnowledgeBase:
    splitter = TokenTextSplitter(
        chunk_tokens=settings.chunk_tokens,
        min_chunk_chars=settings.chunk_min_chars,
        min_embed_chars=settings.chunk_min_embed_chars,
        max_chunks=settings.chunk_max_count,
        encoding_name=settings.tokenizer_encoding,
    )
    fetcher = RemoteDocumentFetcher(
        timeout=settings.file_fetch_timeout,
        max_bytes=settings.file_max_bytes,
    )
    return KnowledgeBase(
        vectorstore=get_vectorstore(),
        fetcher=fetcher,
        splitter=splitter,
        scan_limit=settings.knowledge_scan_limit,
        query_min_score=settings.knowledge_query_min_score,
    )


@lru_cache
def get_chat_pipeline() -> ChatPipeline:
    assembler = PromptAssembler(
        vector_provider=VectorContextProvider(
            vectorstore=get_vectorstore(),
            top_k=settings.vector_context_top_k,
        ),
        history_provider=ChatHistoryProvider(
            base_url=settings.chat_history_api,
            page_size=settings.chat_history_page_size,
            timeout=settings.chat_history_timeout,
        ),
        template_provider=SystemTemplateProvider(
            base_url=settings.chat_history_api,
            key=settings.chat_template_key,
            override=settings.system_template,
            timeout=settings.chat_history_timeout,
        ),
    )
    backend = OllamaChatModel(
        base_url=settings.ollama_base_url,
        model=settings.ollama_model,
        temperature=settings.ollama_temperature,
        timeout=settings.ollama_timeout,
    )
    return ChatPipeline(
        assembler=assembler,
        invoker=ModelInvoker(
            backend=backend,
            tools=get_tool_catalog(),
            max_tool_rounds=settings.chat_max_tool_rounds,
        ),
        streamer=ResponseStreamer(delay_seconds=settings.stream_delay_seconds),
        metrics=get_metrics(),
        supervisor=get_supervisor(),
        model=settings.ollama_model,
        tools_disabled_models=settings.tools_disabled_models,
        invocation_mode=settings.chat_invocation_mode.strip().lower(),
        log_content_chars=settings.chat_log_content_chars,
    )


def reset_pipeline_cache() -> None:
    get_chat_pipeline.cache_clear()
    get_knowledge_base.cache_clear()
    get_vectorstore.cache_clear()
    get_tool_catalog.cache_clear()
    get_supervisor.cache_clear()
    get_metrics.cache_clear()


def build_knowledge_embedder() -> EmbeddingProvider:
    return build_embedder(
        settings.embedding_provider,
        dimension=settings.embedding_dimension,
        ollama_base_url=settings.ollama_base_url,
        ollama_model=settings.ollama_embedding_model,
    )


def build_vectorstore(embedder: EmbeddingProvider) -> InMemoryVectorStore | MilvusVectorStore:
    backend = settings.vectorstore_backend.lower().strip()
    if backend == "milvus":
        config = MilvusConfig(
            uri=settings.milvus_uri,
            token=settings.milvus_token,
            collection=settings.milvus_collection,
            consistency=settings.milvus_consistency,
            index_type=settings.milvus_index_type,
            metric_type=settings.milvus_metric_type,
            nlist=settings.milvus_nlist,
            nprobe=settings.milvus_nprobe,
            hnsw_m=settings.milvus_hnsw_m,
            hnsw_ef_construction=settings.milvus_hnsw_ef_construction,
            hnsw_ef=settings.milvus_hnsw_ef,
        )
        return MilvusVectorStore(embedder=embedder, config=config)
    return InMemoryVectorStore(embedder=embedder)
