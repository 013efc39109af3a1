"""
Retriever Server

FastAPI server exposing search and answer synthesis.

Endpoints:
- POST /api/research-assistant: Grounded answer + ranked results (full metadata)
- POST /api/chat: Grounded answer + ranked results (compact profile)
- GET /api/search: Keyword search over projects and funding calls
- GET /health: Health check

Status codes:
- 400: query missing or too short
- 502: embedding or generation provider unavailable
- 500: graph store failure or unexpected error
- 503: service not initialized
"""

import logging
from typing import Any, Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..common.config import IntelliGraphConfig, load_config
from ..common.errors import ErrorKind, PipelineError, ServiceUnavailableError
from ..common.graph_client import GraphClient
from ..common.llm_client import LLMClient
from ..common.embedding_service import EmbeddingService, get_embedding_service
from .pipeline import ResearchAssistant
from .searcher import KeywordSearcher

logger = logging.getLogger("intelligraph.retriever.server")


# Global state
config: Optional[IntelliGraphConfig] = None
graph_client: Optional[GraphClient] = None
llm_client: Optional[LLMClient] = None
embedding_service: Optional[EmbeddingService] = None
assistant: Optional[ResearchAssistant] = None
keyword_searcher: Optional[KeywordSearcher] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup"""
    global config, graph_client, llm_client, embedding_service, assistant, keyword_searcher

    logger.info("Starting up...")

    config = load_config()

    graph_client = GraphClient.from_config(config)
    if graph_client.verify():
        logger.info("Graph store reachable (%s)", config.graph.uri)
    else:
        logger.warning("Graph store not reachable at %s, searches will fail until it is", config.graph.uri)

    llm_client = LLMClient.from_config(config.llm)
    if llm_client.is_available:
        logger.info("LLM ready (%s: %s)", llm_client.provider, llm_client.model)
    else:
        logger.warning("LLM not available, answer synthesis will return 502")

    embedding_service = get_embedding_service(config)
    if not embedding_service.is_available:
        logger.warning("Embedding service not available, answer synthesis will return 502")

    assistant = ResearchAssistant.from_config(
        config,
        graph_client,
        llm_client=llm_client,
        embedding_service=embedding_service,
    )
    keyword_searcher = KeywordSearcher(
        graph_client,
        store_timeout=config.retriever.store_timeout,
        min_length=config.retriever.min_query_length,
    )

    logger.info("Ready (default profile: %s)", config.retriever.default_profile)

    yield

    # Cleanup
    logger.info("Shutting down...")
    graph_client.close()


app = FastAPI(
    title="IntelliGraph Retriever",
    description="Hybrid semantic search and grounded answer synthesis",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# Request/Response Models
# =============================================================================

class QueryRequest(BaseModel):
    """Search-and-answer request"""
    query: Optional[Any] = None  # validated by the pipeline (400, not 422)


# =============================================================================
# Error Handling
# =============================================================================

@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    if exc.kind == ErrorKind.INVALID_INPUT:
        logger.info("Rejected request to %s: %s", request.url.path, exc.message)
    elif exc.kind == ErrorKind.UNAVAILABLE:
        logger.warning("Request to %s before startup completed", request.url.path)
    else:
        logger.error("Request to %s failed (%s): %s", request.url.path, exc.kind.value, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid request body.", "error": ErrorKind.INVALID_INPUT.value},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error("Unexpected error on %s: %s", request.url.path, exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"message": "Server error.", "error": ErrorKind.INTERNAL.value},
    )


# =============================================================================
# Endpoints
# =============================================================================

async def _answer(request: QueryRequest, profile: str) -> JSONResponse:
    if not assistant:
        raise ServiceUnavailableError("Assistant not initialized.")

    result = await assistant.answer(request.query, profile=profile)
    return JSONResponse(result.to_dict())


@app.post("/api/research-assistant")
async def research_assistant(request: QueryRequest):
    """
    Answer a research question with ranked results.

    Returns answer text plus projects, funding calls and researchers with
    budget, deadline, website and keywords.
    """
    return await _answer(request, "research_assistant")


@app.post("/api/chat")
async def chat(request: QueryRequest):
    """Conversational answer using the compact chat profile"""
    return await _answer(request, "chat")


@app.get("/api/search")
async def search(
    q: Optional[str] = Query(None),
    search_type: str = Query("all", alias="type"),
):
    """Keyword search over projects and funding calls"""
    if not keyword_searcher:
        raise ServiceUnavailableError("Search not initialized.")

    return await keyword_searcher.search(q, search_type=search_type)


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "retriever",
        "initialized": assistant is not None,
        "llm_available": llm_client.is_available if llm_client else False,
        "llm_provider": llm_client.provider if llm_client else None,
        "embedding_available": embedding_service.is_available if embedding_service else False,
        "embedding_mode": embedding_service.mode if embedding_service else None,
        "default_profile": config.retriever.default_profile if config else None,
    }


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the Retriever server"""
    import uvicorn
    from dotenv import load_dotenv

    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    server_config = load_config().server
    logger.info("Starting server on %s:%d", server_config.host, server_config.port)
    uvicorn.run(
        "intelligraph.retriever.server:app",
        host=server_config.host,
        port=server_config.port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
