"""
User identities and the resolver that maps provider events onto them.

Two kinds of identity exist and they are stored differently:

- ``EmailIdentity``: web users. The user row is created by signup elsewhere and
  found through the ``email-index``; the authoritative store is update-only.
- ``TokenIdentity``: mobile users, keyed by the opaque app account token, which
  is also the row's primary key. The local cache upserts these; the
  authoritative store is still update-only.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from .logging_utils import mask_email

logger = logging.getLogger(__name__)

IDENTITY_TYPE_EMAIL = "email"
IDENTITY_TYPE_TOKEN = "token"


@dataclass(frozen=True)
class EmailIdentity:
    email: str

    kind = IDENTITY_TYPE_EMAIL

    @property
    def key(self) -> str:
        return self.email.strip().lower()

    def __str__(self) -> str:
        return mask_email(self.key)


@dataclass(frozen=True)
class TokenIdentity:
    token: str

    kind = IDENTITY_TYPE_TOKEN

    @property
    def key(self) -> str:
        return self.token.strip()

    def __str__(self) -> str:
        return f"token:{self.key}"


Identity = Union[EmailIdentity, TokenIdentity]


def identity_from_fields(email: Optional[str] = None, token: Optional[str] = None) -> Optional[Identity]:
    """Build an identity from request fields. A token wins over an email."""
    if token and str(token).strip():
        return TokenIdentity(str(token).strip())
    if email and "@" in str(email):
        return EmailIdentity(str(email).strip())
    return None


def identity_from_stored(kind: Optional[str], key: Optional[str]) -> Optional[Identity]:
    """Rebuild an identity from a stored (kind, key) pair."""
    if not key:
        return None
    if kind == IDENTITY_TYPE_EMAIL:
        return EmailIdentity(key)
    return TokenIdentity(key)


@dataclass(frozen=True)
class CorrelationHints:
    """Correlation data carried by a provider event, in resolution priority order."""

    token: Optional[str] = None
    email: Optional[str] = None
    customer_id: Optional[str] = None


class IdentityResolver:
    """Resolve the user an event belongs to.

    Order (first match wins): explicit correlation token, email, then a reverse
    lookup of the Stripe customer id in the authoritative store and finally in
    the local cache snapshot.
    """

    def __init__(self, store, cache=None):
        self.store = store
        self.cache = cache

    def resolve(self, hints: CorrelationHints, token_only: bool = False) -> Optional[Identity]:
        if hints.token and str(hints.token).strip():
            return TokenIdentity(str(hints.token).strip())
        if token_only:
            logger.info("No account token on event; token-only resolution failed")
            return None

        if hints.email and "@" in hints.email:
            return EmailIdentity(hints.email.strip())

        if hints.customer_id:
            identity = self.store.find_by_customer_id(hints.customer_id)
            if identity is None and self.cache is not None:
                identity = self.cache.find_by_customer_id(hints.customer_id)
            if identity is not None:
                logger.info(f"Resolved customer {hints.customer_id} to {identity} by reverse lookup")
                return identity

        logger.info(f"Unresolved identity for event (customer={hints.customer_id or 'none'})")
        return None
