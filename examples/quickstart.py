#!/usr/bin/env python3
"""
Ecovale HR Quickstart — the token lifecycle in one script.

register → login → /auth/me → refresh → logout → /auth/me again (401).
Every response carries X-Correlation-ID / X-Request-ID; the script sends
its own correlation ID so all of its calls share one trace.

Run with: python examples/quickstart.py
Backend must be running: http://localhost:8080
"""

import uuid

import httpx

from _common import BASE, check_backend, register_and_login


def main():
    check_backend()
    trace = f"quickstart-{uuid.uuid4().hex[:8]}"

    print("\n1. Register + login...")
    tokens = register_and_login()
    print(f"   Logged in as {tokens['user']['username']} (roles: {tokens['user']['roles']})")
    print(f"   Access token expires in {tokens['expires_in'] // 3600}h")

    client = httpx.Client(
        base_url=BASE,
        timeout=10,
        headers={
            "Authorization": f"Bearer {tokens['access_token']}",
            "X-Correlation-ID": trace,
        },
    )

    print("\n2. Calling /auth/me with the access token...")
    resp = client.get("/auth/me")
    print(f"   {resp.status_code} {resp.json()}")
    print(f"   X-Correlation-ID: {resp.headers['X-Correlation-ID']}")
    print(f"   X-Request-ID:     {resp.headers['X-Request-ID']}")

    print("\n3. Refreshing...")
    resp = httpx.post(
        f"{BASE}/auth/refresh",
        json={"refresh_token": tokens["refresh_token"]},
        headers={"X-Correlation-ID": trace},
        timeout=10,
    )
    assert resp.status_code == 200, f"Failed: {resp.text}"
    tokens = resp.json()
    client.headers["Authorization"] = f"Bearer {tokens['access_token']}"
    print("   Got a new token pair")

    print("\n4. Logging out...")
    resp = client.post("/auth/logout", json={"refresh_token": tokens["refresh_token"]})
    print(f"   {resp.status_code} {resp.json()['message']}")

    print("\n5. Calling /auth/me with the revoked token...")
    resp = client.get("/auth/me")
    print(f"   {resp.status_code} {resp.json()['message']}")

    print("\n6. Calling /auth/me with a corrupted token...")
    resp = client.get("/auth/me", headers={"Authorization": "Bearer not.a.token"})
    print(f"   {resp.status_code} {resp.json()['message']}")


if __name__ == "__main__":
    main()
