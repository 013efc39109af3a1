"""
Configuration Management for IntelliGraph Retrieval

Loads configuration from ~/.intelligraph/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

logger = logging.getLogger("intelligraph.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".intelligraph"
CONFIG_PATH = CONFIG_DIR / "config.json"

# Metadata fields a SearchResult may carry besides its core fields
METADATA_FIELDS = ("budget", "deadline", "website", "keywords")


@dataclass
class GraphConfig:
    """Neo4j graph store configuration"""
    uri: str = "bolt://localhost:7687"
    username: str = "neo4j"
    password: str = ""
    database: str = ""
    project_index: str = "project_embeddings"
    call_index: str = "call_embeddings"
    embedding_dim: int = 768


@dataclass
class EmbeddingConfig:
    """Embedding provider configuration"""
    mode: str = "google"  # google, openai, femb (on-device fastembed)
    model: str = "models/text-embedding-004"
    api_key: str = ""  # falls back to the matching LLM provider key


@dataclass
class LLMConfig:
    """Generative provider configuration"""
    provider: str = "google"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.5-flash"

    @property
    def model(self) -> str:
        return {
            "anthropic": self.anthropic_model,
            "openai": self.openai_model,
            "google": self.google_model,
        }.get(self.provider, "")


@dataclass
class RetrievalProfile:
    """Limits applied by one flavour of the retrieval pipeline"""
    branch_topk: int = 5  # candidates requested from each vector index
    branch_limit: Optional[int] = None  # per-branch cap after thresholding
    result_cap: Optional[int] = 20  # global cap after the merge
    relevance_threshold: float = 0.70
    keyword_score: float = 0.8  # sentinel score for keyword matches
    metadata_fields: Tuple[str, ...] = METADATA_FIELDS

    def validate(self) -> None:
        if not 0.0 <= self.relevance_threshold <= 1.0:
            raise ValueError(f"relevance_threshold must be in [0, 1], got {self.relevance_threshold}")
        if not 0.0 <= self.keyword_score <= 1.0:
            raise ValueError(f"keyword_score must be in [0, 1], got {self.keyword_score}")
        if self.branch_topk < 1:
            raise ValueError(f"branch_topk must be positive, got {self.branch_topk}")
        for name in ("branch_limit", "result_cap"):
            value = getattr(self, name)
            if value is not None and value < 1:
                raise ValueError(f"{name} must be positive or null, got {value}")
        unknown = set(self.metadata_fields) - set(METADATA_FIELDS)
        if unknown:
            raise ValueError(f"Unknown metadata fields: {sorted(unknown)}")


def _default_profiles() -> Dict[str, RetrievalProfile]:
    return {
        "research_assistant": RetrievalProfile(),
        "chat": RetrievalProfile(
            branch_limit=3,
            result_cap=None,
            metadata_fields=(),
        ),
    }


@dataclass
class RetrieverConfig:
    """Retrieval pipeline configuration"""
    min_query_length: int = 2
    refine_max_chars: int = 50  # refine when longer than this
    refine_max_words: int = 10  # ... or when more words than this
    refinement_enabled: bool = True
    embedding_timeout: float = 15.0
    llm_timeout: float = 30.0
    store_timeout: float = 10.0
    currency: str = "TL"
    default_profile: str = "research_assistant"
    profiles: Dict[str, RetrievalProfile] = field(default_factory=_default_profiles)

    def get_profile(self, name: Optional[str] = None) -> RetrievalProfile:
        name = name or self.default_profile
        if name not in self.profiles:
            raise KeyError(f"Unknown retrieval profile: {name}")
        return self.profiles[name]


@dataclass
class ServerConfig:
    """HTTP server configuration"""
    host: str = "0.0.0.0"
    port: int = 8000


@dataclass
class IntelliGraphConfig:
    """Main IntelliGraph configuration"""
    graph: GraphConfig = field(default_factory=GraphConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    retriever: RetrieverConfig = field(default_factory=RetrieverConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)

    @property
    def embedding_api_key(self) -> str:
        """Embedding key, falling back to the matching LLM provider key"""
        if self.embedding.api_key:
            return self.embedding.api_key
        if self.embedding.mode == "google":
            return self.llm.google_api_key
        if self.embedding.mode == "openai":
            return self.llm.openai_api_key
        return ""


def _parse_graph_config(data: dict) -> GraphConfig:
    """Parse graph section from config dict"""
    graph_data = data.get("graph", {})
    return GraphConfig(
        uri=graph_data.get("uri", "bolt://localhost:7687"),
        username=graph_data.get("username") or graph_data.get("user", "neo4j"),
        password=graph_data.get("password", ""),
        database=graph_data.get("database", ""),
        project_index=graph_data.get("project_index", "project_embeddings"),
        call_index=graph_data.get("call_index", "call_embeddings"),
        embedding_dim=graph_data.get("embedding_dim", 768),
    )


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    embedding_data = data.get("embedding", {})
    return EmbeddingConfig(
        mode=embedding_data.get("mode", "google"),
        model=embedding_data.get("model", "models/text-embedding-004"),
        api_key=embedding_data.get("api_key", ""),
    )


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    return LLMConfig(
        provider=llm_data.get("provider", "google"),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", "claude-sonnet-4-20250514"),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", "gpt-4o-mini"),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", "gemini-2.5-flash"),
    )


def _parse_profile(data: dict, base: Optional[RetrievalProfile] = None) -> RetrievalProfile:
    """Parse one retrieval profile, inheriting unspecified values from base"""
    base = base or RetrievalProfile()
    metadata_fields = data.get("metadata_fields", base.metadata_fields)
    profile = RetrievalProfile(
        branch_topk=data.get("branch_topk", base.branch_topk),
        branch_limit=data.get("branch_limit", base.branch_limit),
        result_cap=data.get("result_cap", base.result_cap),
        relevance_threshold=data.get("relevance_threshold", base.relevance_threshold),
        keyword_score=data.get("keyword_score", base.keyword_score),
        metadata_fields=tuple(metadata_fields),
    )
    profile.validate()
    return profile


def _parse_retriever_config(data: dict) -> RetrieverConfig:
    """Parse retriever section from config dict"""
    retriever_data = data.get("retriever", {})
    profiles = _default_profiles()
    for name, profile_data in retriever_data.get("profiles", {}).items():
        profiles[name] = _parse_profile(profile_data, profiles.get(name))

    config = RetrieverConfig(
        min_query_length=retriever_data.get("min_query_length", 2),
        refine_max_chars=retriever_data.get("refine_max_chars", 50),
        refine_max_words=retriever_data.get("refine_max_words", 10),
        refinement_enabled=retriever_data.get("refinement_enabled", True),
        embedding_timeout=retriever_data.get("embedding_timeout", 15.0),
        llm_timeout=retriever_data.get("llm_timeout", 30.0),
        store_timeout=retriever_data.get("store_timeout", 10.0),
        currency=retriever_data.get("currency", "TL"),
        default_profile=retriever_data.get("default_profile", "research_assistant"),
        profiles=profiles,
    )
    if config.default_profile not in config.profiles:
        raise ValueError(f"default_profile '{config.default_profile}' is not defined")
    return config


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server section from config dict"""
    server_data = data.get("server", {})
    return ServerConfig(
        host=server_data.get("host", "0.0.0.0"),
        port=server_data.get("port", 8000),
    )


def load_config() -> IntelliGraphConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.intelligraph/config.json)
    3. Default values

    Raises:
        ValueError: if a retrieval profile holds out-of-range values
    """
    config = IntelliGraphConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.graph = _parse_graph_config(data)
            config.embedding = _parse_embedding_config(data)
            config.llm = _parse_llm_config(data)
            config.retriever = _parse_retriever_config(data)
            config.server = _parse_server_config(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file: %s", e)

    # Environment variable overrides
    if os.getenv("NEO4J_URI"):
        config.graph.uri = os.getenv("NEO4J_URI")
    if os.getenv("NEO4J_USERNAME"):
        config.graph.username = os.getenv("NEO4J_USERNAME")
    if os.getenv("NEO4J_PASSWORD"):
        config.graph.password = os.getenv("NEO4J_PASSWORD")
        config._env_sourced_keys.add("graph_password")
    if os.getenv("NEO4J_DATABASE"):
        config.graph.database = os.getenv("NEO4J_DATABASE")

    if os.getenv("EMBEDDING_MODE"):
        config.embedding.mode = os.getenv("EMBEDDING_MODE")
    if os.getenv("EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("EMBEDDING_MODEL")

    if os.getenv("INTELLIGRAPH_PORT"):
        config.server.port = int(os.getenv("INTELLIGRAPH_PORT"))

    if os.getenv("INTELLIGRAPH_THRESHOLD"):
        threshold = float(os.getenv("INTELLIGRAPH_THRESHOLD"))
        for profile in config.retriever.profiles.values():
            profile.relevance_threshold = threshold
            profile.validate()

    # LLM env var overrides (target config.llm, track env-sourced keys)
    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "INTELLIGRAPH_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    return config


def _profile_to_dict(profile: RetrievalProfile) -> dict:
    return {
        "branch_topk": profile.branch_topk,
        "branch_limit": profile.branch_limit,
        "result_cap": profile.result_cap,
        "relevance_threshold": profile.relevance_threshold,
        "keyword_score": profile.keyword_score,
        "metadata_fields": list(profile.metadata_fields),
    }


def save_config(config: IntelliGraphConfig) -> None:
    """Save configuration to file.

    Secrets that were sourced from environment variables are written as
    empty strings so that they are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    llm_section = {
        "provider": config.llm.provider,
        "anthropic_api_key": config.llm.anthropic_api_key,
        "anthropic_model": config.llm.anthropic_model,
        "openai_api_key": config.llm.openai_api_key,
        "openai_model": config.llm.openai_model,
        "google_api_key": config.llm.google_api_key,
        "google_model": config.llm.google_model,
    }
    for key in ("anthropic_api_key", "openai_api_key", "google_api_key"):
        if key in env_sourced:
            llm_section[key] = ""

    data = {
        "graph": {
            "uri": config.graph.uri,
            "username": config.graph.username,
            "password": "" if "graph_password" in env_sourced else config.graph.password,
            "database": config.graph.database,
            "project_index": config.graph.project_index,
            "call_index": config.graph.call_index,
            "embedding_dim": config.graph.embedding_dim,
        },
        "embedding": {
            "mode": config.embedding.mode,
            "model": config.embedding.model,
            "api_key": config.embedding.api_key,
        },
        "llm": llm_section,
        "retriever": {
            "min_query_length": config.retriever.min_query_length,
            "refine_max_chars": config.retriever.refine_max_chars,
            "refine_max_words": config.retriever.refine_max_words,
            "refinement_enabled": config.retriever.refinement_enabled,
            "embedding_timeout": config.retriever.embedding_timeout,
            "llm_timeout": config.retriever.llm_timeout,
            "store_timeout": config.retriever.store_timeout,
            "currency": config.retriever.currency,
            "default_profile": config.retriever.default_profile,
            "profiles": {
                name: _profile_to_dict(profile)
                for name, profile in config.retriever.profiles.items()
            },
        },
        "server": {
            "host": config.server.host,
            "port": config.server.port,
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)
