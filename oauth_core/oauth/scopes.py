# oauth_core/oauth/scopes.py
from enum import Enum
from typing import List, Optional


class OAuthScope(str, Enum):
    """Scopes this authorization server recognizes."""

    PROFILE = "profile"
    EMAIL = "email"
    ORG_READ = "org:read"
    FULL = "full"

    @property
    def description(self) -> str:
        return _SCOPE_DESCRIPTIONS[self]

    @classmethod
    def parse(cls, value: str) -> Optional["OAuthScope"]:
        """Return the matching scope, or None for an unrecognized value."""
        try:
            return cls(value)
        except ValueError:
            return None


_SCOPE_DESCRIPTIONS = {
    OAuthScope.PROFILE: "Access your basic profile information (name, avatar)",
    OAuthScope.EMAIL: "Access your email address",
    OAuthScope.ORG_READ: "Read-only access to your organization data",
    OAuthScope.FULL: "Full access to your account and data",
}

RECOGNIZED_SCOPES = frozenset(scope.value for scope in OAuthScope)


def is_recognized_scope(value: str) -> bool:
    return value in RECOGNIZED_SCOPES


def parse_scope_string(scope: Optional[str]) -> List[str]:
    """
    Split a space-delimited scope parameter (RFC 6749 - Section 3.3).

    Duplicates are dropped while the first-seen order is kept.
    """
    if not scope:
        return []
    seen: List[str] = []
    for item in scope.split():
        if item not in seen:
            seen.append(item)
    return seen


def join_scopes(scopes: List[str]) -> str:
    return " ".join(scopes)


def merge_scopes(existing: List[str], added: List[str]) -> List[str]:
    """Union of two scope lists, keeping the existing order first."""
    merged = list(existing)
    for scope in added:
        if scope not in merged:
            merged.append(scope)
    return merged
