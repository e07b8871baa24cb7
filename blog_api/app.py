"""
Blog API — Main application entry point.

Boots the FastAPI server, loads config, connects the post store and
registers the ``/posts`` routes.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import yaml
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from blog_api import __version__
from blog_api.models import AppConfig
from blog_api.router import create_router
from blog_api.store import create_store

logger = logging.getLogger("blog_api")


# ---------------------------------------------------------------------------
# Config loading
# ---------------------------------------------------------------------------

def _resolve_env(value: Any) -> Any:
    """Recursively resolve ${ENV_VAR} placeholders in config values."""
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        env_key = value[2:-1]
        return os.environ.get(env_key, value)
    if isinstance(value, dict):
        return {k: _resolve_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env(v) for v in value]
    return value


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """
    Load app config from a YAML file.  Falls back to env vars and defaults.
    """
    path = Path(config_path) if config_path else Path("blog.yaml")

    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        raw = _resolve_env(raw)
        return AppConfig.model_validate(raw)

    logger.debug("No config file found at %s, using defaults + env vars.", path)
    defaults = AppConfig()
    return AppConfig(
        host=os.getenv("HOST", defaults.host),
        port=int(os.getenv("PORT", defaults.port)),
        database_url=os.getenv("DATABASE_URL", defaults.database_url),
        test_database_url=os.getenv("TEST_DATABASE_URL", defaults.test_database_url),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level),
        harness={
            "scenario_timeout": float(
                os.getenv("SCENARIO_TIMEOUT", defaults.harness.scenario_timeout)
            ),
        },
    )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    database_url: str = app.state.database_url

    store = create_store(database_url)
    await store.connect()
    app.state.store = store

    logger.info(
        "%s is live on %s store '%s'",
        app.title,
        store.backend.value,
        store.database_name,
    )

    try:
        yield
    finally:
        await store.disconnect()
        logger.info("%s shut down.", app.title)


def create_app(
    config: AppConfig | None = None,
    config_path: str | Path | None = None,
    database_url: str | None = None,
) -> FastAPI:
    """
    Build and return the FastAPI application.

    *database_url* overrides ``config.database_url``; the integration
    harness uses it to point the app at the test database.
    """
    if config is None:
        config = load_config(config_path)

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )

    app = FastAPI(
        title=config.app_name,
        description="Blog post CRUD API backed by a document store.",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.database_url = database_url or config.database_url

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(create_router())

    @app.get("/health", tags=["system"])
    async def health():
        store = getattr(app.state, "store", None)
        return {
            "status": "ok",
            "app": config.app_name,
            "store": {
                "backend": store.backend.value if store else None,
                "connected": store.connected if store else False,
            },
        }

    return app


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main():
    """Run the server from the command line."""
    import uvicorn

    config_path = sys.argv[1] if len(sys.argv) > 1 else None
    config = load_config(config_path)

    if config_path:
        os.environ["BLOG_API_CONFIG"] = config_path

    uvicorn.run(
        "blog_api.app:build_app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        factory=True,
        log_level=config.log_level.lower(),
    )


def build_app() -> FastAPI:
    """Uvicorn factory: honours the config path handed over by :func:`main`."""
    return create_app(config_path=os.environ.get("BLOG_API_CONFIG"))


if __name__ == "__main__":
    main()
