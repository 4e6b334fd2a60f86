"""FastAPI application factory and lifespan management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from specgraph import __version__
from specgraph.api.graph_routes import graph_router
from specgraph.config import settings
from specgraph.graph.indexer import GraphIndexer
from specgraph.logging import setup_logging


def create_app(indexer: Optional[GraphIndexer] = None) -> FastAPI:
    """Build and return the configured FastAPI application.

    Args:
        indexer: Indexer to serve.  A fresh one built from settings is
            created at startup when omitted.

    Returns:
        A fully wired :class:`FastAPI` instance.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging(settings.log_level, json_logs=settings.json_logs)
        app.state.indexer = indexer or GraphIndexer()
        app.state.indexer.initialize()
        try:
            yield
        finally:
            app.state.indexer.close()

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        description=(
            "Specification graph engine: indexes OpenAPI documents into a "
            "property graph (Neo4j or in-memory) and answers dependency, "
            "traversal and pattern queries over it."
        ),
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(graph_router, tags=["Specification Graph"])
    return app


app = create_app()
