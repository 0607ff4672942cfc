"""
Wallet address resolution for users and authentication sessions.
"""

from typing import Any, Dict, Optional

from .models import ForumUser
from .validators import is_eth_address

SIWE_PROVIDER = "siwe"


def identity_from_user(user: Optional[ForumUser]) -> Optional[str]:
    """Address of the user's Sign-In With Ethereum account, if any."""
    if user is None:
        return None
    for account in user.associated_accounts:
        if account.get("name") == SIWE_PROVIDER and is_eth_address(account.get("description")):
            return account["description"].strip().lower()
    return None


def identity_from_session(session: Dict[str, Any]) -> Optional[str]:
    """Address carried by an in-flight authentication (``authentication.extra_data.uid``)."""
    authentication = (session or {}).get("authentication") or {}
    extra_data = authentication.get("extra_data") or {}
    uid = extra_data.get("uid")
    if not is_eth_address(uid):
        return None
    return uid.strip().lower()


class IdentityResolver:
    """Default resolver; hosts with other account layouts can substitute their own."""

    def resolve_user(self, user: Optional[ForumUser]) -> Optional[str]:
        return identity_from_user(user)

    def resolve_session(self, session: Dict[str, Any]) -> Optional[str]:
        return identity_from_session(session)
