#!/usr/bin/env python3
"""Run the gateway as a standalone server.

Usage:
    # Host/port from HOST, PORT and APP_ENV:
    python scripts/serve.py

    # Or override on the command line:
    python scripts/serve.py --host 0.0.0.0 --port 8080 --reload

Environment Variables:
    API_SECRET_KEY: Shared secret callers send in x-api-key
    OPENAI_API_KEY: Provider key (required unless MODEL_BACKEND=stub)
    HOST / PORT: Bind address (default localhost:3000, 0.0.0.0 in production)
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import uvicorn

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def main() -> None:
    from mftgateway.config import get_settings

    settings = get_settings()

    parser = argparse.ArgumentParser(description="Serve the chat gateway with uvicorn")
    parser.add_argument("--host", default=settings.bind_host, help="Bind host (or set HOST)")
    parser.add_argument("--port", type=int, default=settings.port, help="Bind port (or set PORT)")
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Restart on source changes (development only)",
    )
    args = parser.parse_args()

    uvicorn.run(
        "mftgateway.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="warning" if settings.app_env.value == "production" else "info",
    )


if __name__ == "__main__":
    main()
