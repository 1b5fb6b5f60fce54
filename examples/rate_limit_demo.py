#!/usr/bin/env python3
"""
Ecovale HR rate limit demo — hammer /auth/login until it says 429.

With default settings the login bucket holds 5 tokens and refills over a
minute, so attempts 1-5 reach the credential check (401 for the bogus
password) and attempt 6 is stopped by the limiter.

Run with: python examples/rate_limit_demo.py
"""

import httpx

from _common import BASE, check_backend


def main():
    check_backend()
    print("\nSending 7 login attempts with a wrong password...")
    for attempt in range(1, 8):
        resp = httpx.post(
            f"{BASE}/auth/login",
            json={"username": "nobody", "password": "wrong-password"},
            timeout=10,
        )
        remaining = resp.headers.get("X-RateLimit-Remaining", "-")
        if resp.status_code == 429:
            body = resp.json()
            print(
                f"  #{attempt}: 429 {body['message']} "
                f"(Retry-After: {resp.headers['Retry-After']}s)"
            )
        else:
            print(f"  #{attempt}: {resp.status_code} (remaining: {remaining})")


if __name__ == "__main__":
    main()
