"""
Shared helpers for Ecovale HR examples.

Handles the health check and register + login so each example can
focus on the behaviour it demonstrates.
"""

import sys
import uuid

import httpx

BASE = "http://localhost:8080/api/v1"


def check_backend() -> None:
    """Verify the backend is reachable and ready."""
    try:
        resp = httpx.get(f"{BASE}/health/ready", timeout=5)
    except httpx.ConnectError:
        print(f"ERROR: Backend not reachable at {BASE}")
        print("Start it with:  ecovale-hr serve --reload")
        sys.exit(1)

    if resp.status_code != 200:
        print(f"ERROR: Readiness check returned {resp.status_code}: {resp.text}")
        sys.exit(1)
    print(f"Backend ready (database: {resp.json()['database']})")


def register_and_login() -> dict:
    """Register a fresh user and login, returning the token response.

    Uses a unique username per run so examples are idempotent.
    """
    run_id = uuid.uuid4().hex[:8]
    username = f"demo-{run_id}"
    password = "demo-password-123"

    resp = httpx.post(
        f"{BASE}/auth/register",
        json={
            "username": username,
            "email": f"{username}@example.com",
            "full_name": f"Demo User {run_id}",
            "password": password,
        },
        timeout=10,
    )
    if resp.status_code != 201:
        print(f"ERROR: Registration failed: {resp.status_code} {resp.text}")
        sys.exit(1)

    resp = httpx.post(
        f"{BASE}/auth/login",
        json={"username": username, "password": password},
        timeout=10,
    )
    if resp.status_code != 200:
        print(f"ERROR: Login failed: {resp.status_code} {resp.text}")
        sys.exit(1)
    return resp.json()
