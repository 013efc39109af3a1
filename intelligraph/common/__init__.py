"""
IntelliGraph Common Module

Shared infrastructure for the retrieval pipeline: configuration, provider
adapters and the graph store client.
"""

from .config import IntelliGraphConfig, RetrievalProfile, load_config
from .embedding_service import EmbeddingService, get_embedding_service
from .errors import (
    ErrorKind,
    PipelineError,
    InvalidInputError,
    UpstreamUnavailableError,
    StoreError,
    ServiceUnavailableError,
)
from .graph_client import GraphClient, Relation
from .llm_client import LLMClient

__all__ = [
    "IntelliGraphConfig",
    "RetrievalProfile",
    "load_config",
    "EmbeddingService",
    "get_embedding_service",
    "ErrorKind",
    "PipelineError",
    "InvalidInputError",
    "UpstreamUnavailableError",
    "StoreError",
    "ServiceUnavailableError",
    "GraphClient",
    "Relation",
    "LLMClient",
]
