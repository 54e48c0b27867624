"""
Shared helpers for PromptDex identity examples.

Handles the health check and local sign-up/login so each example can
focus on what it demonstrates.
"""

import os
import sys
import uuid

import httpx

BASE = os.environ.get("PROMPTDEX_API_URL", "http://localhost:8000").rstrip("/")


def check_backend() -> None:
    """Verify the backend is reachable and its database is up."""
    try:
        resp = httpx.get(f"{BASE}/health", timeout=5)
    except httpx.ConnectError:
        print(f"ERROR: Backend not reachable at {BASE}")
        print("Start it with:  uvicorn promptdex.main:app --reload --port 8000")
        sys.exit(1)

    health = resp.json()
    print("Backend health:")
    print(f"  Database: {'✓' if health['database'] == 'ok' else '✗'}")
    print(f"  Redis:    {'✓' if health['redis'] == 'ok' else '✗ (rate limiting off)'}")

    if health["database"] != "ok":
        print("\nERROR: Database is not reachable. Check PROMPTDEX_DATABASE_URL.")
        sys.exit(1)


def register(password: str = "demo-password-123") -> dict:
    """Register a fresh local account (unique per run) and return it."""
    run_id = uuid.uuid4().hex[:8]
    resp = httpx.post(
        f"{BASE}/auth/register",
        json={
            "username": f"demo_{run_id}",
            "email": f"demo-{run_id}@example.com",
            "password": password,
        },
        timeout=10,
    )
    if resp.status_code != 201:
        print(f"ERROR: Registration failed: {resp.status_code} {resp.text}")
        sys.exit(1)
    return resp.json()


def login(username: str, password: str = "demo-password-123") -> str:
    """Log in and return the bearer token."""
    resp = httpx.post(
        f"{BASE}/auth/login",
        json={"username": username, "password": password},
        timeout=10,
    )
    if resp.status_code != 200:
        print(f"ERROR: Login failed: {resp.status_code} {resp.text}")
        sys.exit(1)
    return resp.json()["token"]


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
