"""CORS middleware configuration."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from academy.config import Settings


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Let the academy dashboard read stats, leaderboard and config cross-origin."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-Id", "X-Service-Token"],
        expose_headers=["X-Request-Id"],
    )
