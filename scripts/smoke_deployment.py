#!/usr/bin/env python3
"""Post-deploy smoke check against a running gateway.

Calls GET /health and one POST /api/chat, printing what came back, and exits
non-zero on the first failure.

Usage:
    GATEWAY_URL=https://example.vercel.app API_SECRET_KEY=... python scripts/smoke_deployment.py

    python scripts/smoke_deployment.py --base-url http://localhost:3000 --api-key secret
"""
from __future__ import annotations

import argparse
import os
import sys
from datetime import datetime, timezone

import httpx

SMOKE_USER_ID = "smoke-test-12345678-1234-4321-abcd-123456789012"


def check_health(client: httpx.Client) -> None:
    print("Checking /health ...")
    response = client.get("/health")
    if response.status_code != 200:
        raise RuntimeError(f"Health check failed: {response.status_code}")
    data = response.json()
    if data.get("status") != "ok":
        raise RuntimeError("Health check returned invalid status")
    print(f"  status: {data['status']}")
    print(f"  service: {data.get('service')}")


def check_chat(client: httpx.Client, api_key: str) -> None:
    print("Checking /api/chat ...")
    payload = {
        "messages": [
            {
                "id": "1",
                "content": 'Hello! Please respond with just "API test successful".',
                "isUser": True,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        ],
        "language": "english",
        "personality": {"humor": 3, "mockery": 2, "seriousness": 3, "professionalism": 4},
        "userId": SMOKE_USER_ID,
    }
    response = client.post(
        "/api/chat",
        json=payload,
        headers={"x-api-key": api_key, "x-user-id": SMOKE_USER_ID},
    )
    if response.status_code != 200:
        print(f"  error details: {response.text}")
        raise RuntimeError(f"Chat endpoint failed: {response.status_code}")
    data = response.json()
    print(f"  reply: {data['message']}")
    print(f"  userId: {data['userId']}")
    print(f"  timestamp: {data['timestamp']}")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--base-url",
        default=os.environ.get("GATEWAY_URL", "http://localhost:3000"),
        help="Gateway base URL (or set GATEWAY_URL)",
    )
    parser.add_argument(
        "--api-key",
        default=os.environ.get("API_SECRET_KEY"),
        help="Shared secret for x-api-key (or set API_SECRET_KEY)",
    )
    parser.add_argument("--timeout", type=float, default=60.0, help="Request timeout in seconds")
    args = parser.parse_args()

    if not args.api_key:
        print("Error: --api-key or API_SECRET_KEY environment variable required")
        sys.exit(1)

    try:
        with httpx.Client(base_url=args.base_url, timeout=args.timeout) as client:
            check_health(client)
            check_chat(client, args.api_key)
    except (httpx.HTTPError, RuntimeError, ValueError) as e:
        print(f"Smoke test failed: {e}")
        sys.exit(1)
    print("All smoke checks passed.")


if __name__ == "__main__":
    main()
