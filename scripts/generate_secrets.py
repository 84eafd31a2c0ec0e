#!/usr/bin/env python3
"""
Generate production-grade secrets for the blog API.

Prints values to stdout; do NOT commit the output.
"""

from __future__ import annotations

import secrets


def token(nbytes: int = 48) -> str:
    # URL-safe; ~ (4/3)*nbytes chars
    return secrets.token_urlsafe(nbytes)


def main() -> None:
    print("# Paste these into your secret manager / deployment env vars")
    print(f"JWT_SECRET_KEY={token(64)}")
    print(f"JWT_REFRESH_SECRET_KEY={token(64)}")
    print(f"JWT_RECOVERY_SECRET_KEY={token(64)}")
    print(f"CODE_HASH_SECRET_KEY={token(64)}")
    print(f"ADMIN_PASSWORD={token(24)}")
    print("# Optional")
    print(f"METRICS_TOKEN={token(32)}")


if __name__ == "__main__":
    main()
