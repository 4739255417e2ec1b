"""
Search pipeline services

This module provides:
- Query bus (per-session keystroke pub/sub over Redis or in-process queues)
- Fragment normalization and query building
- Debounce / cancel engine (one per session)
- PostgreSQL full-text search gateway
- Result micro-batching and the per-channel session pipeline
"""

from searchstream.services.debounce_cancel_engine import DebounceCancelEngine, EngineState
from searchstream.services.query_builder import QueryBuilder, QueryMode, SearchRequest
from searchstream.services.query_bus import InMemoryQueryBus, QueryBus, RedisQueryBus
from searchstream.services.query_normalizer import FragmentFilter, normalize
from searchstream.services.result_batcher import BatcherConfig, ResultBatch, ResultBatcher, encode_batch
from searchstream.services.search_gateway import PostgresSearchGateway, SearchGateway
from searchstream.services.session_pipeline import PipelineConfig, SessionPipeline

__all__ = [
    "BatcherConfig",
    "DebounceCancelEngine",
    "EngineState",
    "FragmentFilter",
    "InMemoryQueryBus",
    "PipelineConfig",
    "PostgresSearchGateway",
    "QueryBuilder",
    "QueryBus",
    "QueryMode",
    "RedisQueryBus",
    "ResultBatch",
    "ResultBatcher",
    "SearchGateway",
    "SearchRequest",
    "SessionPipeline",
    "encode_batch",
    "normalize",
]
