"""Shared billing utilities: Stripe secret lookup and the dual-write billing writer."""

import json
import logging
import time
from typing import Iterable

from botocore.exceptions import ClientError

from .aws_clients import get_secretsmanager
from .identity import Identity
from .types import BillingPatch

logger = logging.getLogger(__name__)

# Cached Stripe secrets with TTL
_stripe_secrets_cache: tuple[str | None, str | None] = (None, None)
_stripe_secrets_cache_time = 0.0
STRIPE_SECRETS_CACHE_TTL = 300  # 5 minutes


def _read_secret(secret_arn: str, json_key: str) -> str | None:
    try:
        response = get_secretsmanager().get_secret_value(SecretId=secret_arn)
    except ClientError as e:
        logger.error(f"Failed to retrieve secret {secret_arn}: {e}")
        return None

    secret_value = response.get("SecretString", "")
    try:
        secret_json = json.loads(secret_value)
    except json.JSONDecodeError:
        return secret_value or None
    if isinstance(secret_json, dict):
        return secret_json.get(json_key) or secret_value
    return secret_value or None


def _secrets_complete(settings, api_key, webhook_secret) -> bool:
    """Every secret configured through Secrets Manager was actually read."""
    return bool(api_key or not settings.stripe_secret_arn) and bool(
        webhook_secret or not settings.stripe_webhook_secret_arn
    )


def get_stripe_secrets(settings) -> tuple[str | None, str | None]:
    """Return (api_key, webhook_secret).

    Plain environment values are used as-is; otherwise the values are read
    from Secrets Manager and cached with a TTL. A failed read is not cached,
    so the next call retries, and the last good values are served meanwhile.
    """
    global _stripe_secrets_cache, _stripe_secrets_cache_time

    api_key = settings.stripe_secret_key
    webhook_secret = settings.stripe_webhook_secret
    if api_key and webhook_secret:
        return api_key, webhook_secret

    cached_key, cached_secret = _stripe_secrets_cache
    if (time.time() - _stripe_secrets_cache_time) < STRIPE_SECRETS_CACHE_TTL:
        return api_key or cached_key, webhook_secret or cached_secret

    if not api_key and settings.stripe_secret_arn:
        api_key = _read_secret(settings.stripe_secret_arn, "key")
    if not webhook_secret and settings.stripe_webhook_secret_arn:
        webhook_secret = _read_secret(settings.stripe_webhook_secret_arn, "secret")

    if _secrets_complete(settings, api_key, webhook_secret):
        _stripe_secrets_cache = (api_key, webhook_secret)
        _stripe_secrets_cache_time = time.time()
        return api_key, webhook_secret

    logger.warning("Stripe secrets incomplete, will retry Secrets Manager on next request")
    return api_key or cached_key, webhook_secret or cached_secret


def reset_stripe_secrets_cache():
    """Drop cached secrets. Used in tests."""
    global _stripe_secrets_cache, _stripe_secrets_cache_time
    _stripe_secrets_cache = (None, None)
    _stripe_secrets_cache_time = 0.0


class BillingWriter:
    """Centralized billing state writer.

    Writes the local cache first (upsert), then the authoritative store
    (update-only). The two writes are independent: a store failure does not
    roll back the cache, and a cache failure does not block the store.
    """

    def __init__(self, store, cache):
        self.store = store
        self.cache = cache

    def apply(
        self,
        identity: Identity,
        patch: BillingPatch,
        set_if_absent: Iterable[str] = (),
    ) -> bool:
        """
        Apply a patch for an identity to both backends.

        Args:
            identity: Resolved user identity (cache key)
            patch: Partial update; None clears a field
            set_if_absent: Fields that keep an existing value

        Returns:
            True if the authoritative store row was updated
        """
        set_if_absent = tuple(set_if_absent)

        cached = self.cache.upsert(identity, patch, set_if_absent)
        if not cached:
            logger.warning(f"Local cache write failed for {identity}; continuing with store")

        stored = self.store.update(identity, patch, set_if_absent)

        changed = ", ".join(f"-{k}" if v is None else k for k, v in sorted(patch.items()))
        logger.info(
            f"Billing state applied for {identity}: {changed} "
            f"(cache={'ok' if cached else 'failed'}, store={'ok' if stored else 'skipped'})"
        )
        return stored
