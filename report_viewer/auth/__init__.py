"""
Session and login helpers for the report viewer.

Design goals:
- Cookie-based session (HttpOnly, signed, 1h TTL) for same-origin pages.
- Optional OIDC login (authorization code + PKCE) for the `oidc` variant.
"""
