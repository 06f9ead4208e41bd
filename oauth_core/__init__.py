# oauth_core/__init__.py
"""OAuth 2.0 authorization server: authorization code + PKCE, refresh rotation, introspection and revocation."""

__version__ = "0.1.0"
