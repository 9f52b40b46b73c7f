"""
FastAPI application entry point.

This is the main FastAPI application that coordinates all API routes and middleware.
It serves as the bridge between HTTP requests and the flow pipeline.
"""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import chat, flows, health, media
from studyflow import __version__
from studyflow.models.manager import DEFAULT_CONFIG_PATH, ModelManager
from studyflow.pipeline.executor import FlowExecutor
from studyflow.pipeline.flows import build_flows

logger = logging.getLogger(__name__)

# Global application state
app_state = {}

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Flow definitions and the model manager are created once at startup and
    shared read-only by every request; providers are closed at shutdown.
    """
    load_dotenv()
    config_path = Path(os.getenv("STUDYFLOW_CONFIG", str(DEFAULT_CONFIG_PATH)))
    logger.info(f"Starting StudyFlow API with config {config_path}")

    model_manager = ModelManager(config_path=config_path)
    app_state["model_manager"] = model_manager
    app_state["flows"] = build_flows(model_manager.prompts)
    app_state["executor"] = FlowExecutor(model_manager)
    logger.info(f"Registered flows: {', '.join(app_state['flows'])}")

    yield  # Server runs here

    logger.info("Shutting down StudyFlow API")
    await model_manager.cleanup()
    app_state.clear()

def create_app() -> FastAPI:
    """
    Factory function to create and configure the FastAPI application.
    """
    app = FastAPI(
        title="StudyFlow API",
        description="Typed generative-AI flows for chat, documents, flashcards, quizzes, images and audio",
        version=__version__,
        lifespan=lifespan
    )

    origins = os.getenv("STUDYFLOW_CORS_ORIGINS", "http://localhost:3000,http://localhost:9002")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in origins.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API routers
    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(chat.router, prefix="/api/v1/chat", tags=["chat"])
    app.include_router(flows.router, prefix="/api/v1/flows", tags=["flows"])
    app.include_router(media.router, prefix="/api/v1/media", tags=["media"])

    @app.get("/")
    async def root():
        """Root endpoint with basic API information."""
        return {
            "name": "StudyFlow API",
            "version": __version__,
            "status": "operational",
            "endpoints": {
                "health": "/health",
                "chat": "/api/v1/chat",
                "flows": "/api/v1/flows",
                "media": "/api/v1/media",
                "docs": "/docs",
            }
        }

    return app

# Create the FastAPI app instance
app = create_app()
