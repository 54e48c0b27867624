"""
Quickstart: local account → bearer token → protected route.

Walks through:
1. Register a LOCAL account
2. Try registering the same username again (400)
3. Log in by username, then by email
4. Call /auth/me with and without the token
5. Print the URL that starts a GitHub login in the browser

Usage:
    uvicorn promptdex.main:app --port 8000   # in another terminal
    python examples/quickstart.py
"""

import httpx

from _common import BASE, auth_headers, check_backend, login, register


def main() -> None:
    check_backend()

    print("\n── Register ──")
    account = register()
    print(f"  Created {account['username']} ({account['email']}), roles={account['roles']}")

    dup = httpx.post(
        f"{BASE}/auth/register",
        json={
            "username": account["username"],
            "email": "someone-else@example.com",
            "password": "demo-password-123",
        },
        timeout=10,
    )
    print(f"  Same username again → {dup.status_code} {dup.json()['detail']}")

    print("\n── Login ──")
    token = login(account["username"])
    print(f"  By username → token {token[:24]}…")
    token_by_email = login(account["email"])
    print(f"  By email    → token {token_by_email[:24]}…")

    print("\n── /auth/me ──")
    anon = httpx.get(f"{BASE}/auth/me", timeout=10)
    print(f"  Without token → {anon.status_code}")
    me = httpx.get(f"{BASE}/auth/me", headers=auth_headers(token), timeout=10)
    print(f"  With token    → {me.status_code} {me.json()['username']}")

    print("\n── Federated login ──")
    print(f"  Open in a browser: {BASE}/oauth2/authorize/github")
    print("  (needs PROMPTDEX_GITHUB_CLIENT_ID / _SECRET on the server)")


if __name__ == "__main__":
    main()
