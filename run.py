#!/usr/bin/env python3
"""
Run the Trinity orchestration API server.

Usage:
    python run.py                    # Run on API_HOST:API_PORT (default 0.0.0.0:8000)
    python run.py --port 8080        # Run on custom port
    python run.py --reload           # Run with hot reload (dev mode)

Environment Variables (set in .env file or export):
    OPENAI_API_KEY=sk-...           # Default provider for every agent
    ANTHROPIC_API_KEY=sk-ant-...    # Optional: Claude models
    GOOGLE_API_KEY / MISTRAL_API_KEY / OPENROUTER_API_KEY
    TRINITY_EXECUTION_MODE=parallel # Optional: parallel, sequential or hybrid

Quick Start:
    1. Create a .env file with your API keys
    2. Install the project: pip install -e .
    3. Run the server: python run.py
    4. Open http://localhost:8000/docs in your browser
"""

import argparse
from pathlib import Path

from dotenv import load_dotenv

# Must run before config is imported
load_dotenv(Path(__file__).parent / ".env")

import structlog  # noqa: E402
import uvicorn  # noqa: E402

from config import Config  # noqa: E402
from core.logging_config import configure_logging  # noqa: E402

logger = structlog.get_logger()


def main():
    app_config = Config.from_env()

    parser = argparse.ArgumentParser(description="Run the Trinity orchestration API")
    parser.add_argument("--host", default=app_config.api_host, help="Host to bind to")
    parser.add_argument("--port", type=int, default=app_config.api_port, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    args = parser.parse_args()

    configure_logging(app_config.log_level)

    if not app_config.validate():
        logger.warning(
            "No provider API key found; requests will fail with MissingCredential",
            expected=list(app_config.provider_keys()),
        )
    else:
        logger.info("Providers configured", providers=app_config.configured_providers())

    logger.info(
        "Starting server",
        url=f"http://{args.host}:{args.port}",
        docs=f"http://localhost:{args.port}/docs",
        execution_mode=app_config.execution_mode,
    )

    uvicorn.run(
        "api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
