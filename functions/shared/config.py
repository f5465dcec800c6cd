"""
Environment-driven configuration for Premium Sync Lambdas.

Every option is read from the process environment. Missing required options
are reported by ``Settings.missing_required()``; callers log them as warnings
and keep going so that unrelated routes stay available.
"""

import os
from dataclasses import dataclass, field

from .constants import DEFAULT_BASE_URL, DEFAULT_GRACE_PERIOD_DAYS


def _bool_env(name: str, default: bool = False) -> bool:
    raw = str(os.environ.get(name, "")).strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _int_env(name: str, default: int | None) -> int | None:
    raw = str(os.environ.get(name, "")).strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _list_env(name: str) -> list[str]:
    raw = os.environ.get(name, "")
    return [part.strip().rstrip("/") for part in raw.split(",") if part.strip()]


@dataclass
class Settings:
    """Recognized configuration options."""

    # Stripe (plain values win over Secrets Manager ARNs)
    stripe_secret_key: str | None = None
    stripe_secret_arn: str | None = None
    stripe_webhook_secret: str | None = None
    stripe_webhook_secret_arn: str | None = None
    stripe_price_id: str | None = None
    base_url: str | None = None

    # Authoritative store
    users_table: str = "premium-sync-users"
    dynamodb_endpoint_url: str | None = None

    # Local cache
    local_cache_path: str = "/tmp/premium-sync-cache.json"

    # Billing policy
    grace_period_days: int = DEFAULT_GRACE_PERIOD_DAYS

    # Apple App Store Server Notifications
    apple_bundle_id: str | None = None
    apple_app_apple_id: int | None = None
    apple_environment: str = "Production"
    apple_root_certs_dir: str | None = None
    apple_enable_online_checks: bool = True

    allowed_origins: list[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            stripe_secret_key=os.environ.get("STRIPE_SECRET_KEY") or None,
            stripe_secret_arn=os.environ.get("STRIPE_SECRET_ARN") or None,
            stripe_webhook_secret=os.environ.get("STRIPE_WEBHOOK_SECRET") or None,
            stripe_webhook_secret_arn=os.environ.get("STRIPE_WEBHOOK_SECRET_ARN") or None,
            stripe_price_id=os.environ.get("STRIPE_PRICE_ID") or None,
            base_url=(os.environ.get("BASE_URL") or "").rstrip("/") or None,
            users_table=os.environ.get("USERS_TABLE") or "premium-sync-users",
            dynamodb_endpoint_url=os.environ.get("DYNAMODB_ENDPOINT_URL") or None,
            local_cache_path=os.environ.get("LOCAL_CACHE_PATH") or "/tmp/premium-sync-cache.json",
            grace_period_days=_int_env("PAYMENT_GRACE_PERIOD_DAYS", DEFAULT_GRACE_PERIOD_DAYS),
            apple_bundle_id=os.environ.get("APPLE_BUNDLE_ID") or None,
            apple_app_apple_id=_int_env("APPLE_APP_APPLE_ID", None),
            apple_environment=os.environ.get("APPLE_ENVIRONMENT") or "Production",
            apple_root_certs_dir=os.environ.get("APPLE_ROOT_CERTS_DIR") or None,
            apple_enable_online_checks=_bool_env("APPLE_ENABLE_ONLINE_CHECKS", True),
            allowed_origins=_list_env("ALLOWED_ORIGINS"),
        )

    @property
    def public_url(self) -> str:
        """Site the checkout and portal flows send the browser back to."""
        return self.base_url or DEFAULT_BASE_URL

    def cors_origins(self) -> list[str]:
        """Origins allowed to call the browser-facing routes: ALLOWED_ORIGINS plus BASE_URL."""
        origins = list(self.allowed_origins)
        if self.base_url:
            origins.append(self.base_url)
        return origins

    def missing_required(self) -> list[str]:
        """Names of required options that are not configured."""
        missing = []
        if not (self.stripe_secret_key or self.stripe_secret_arn):
            missing.append("STRIPE_SECRET_KEY")
        if not (self.stripe_webhook_secret or self.stripe_webhook_secret_arn):
            missing.append("STRIPE_WEBHOOK_SECRET")
        if not self.stripe_price_id:
            missing.append("STRIPE_PRICE_ID")
        if not self.base_url:
            missing.append("BASE_URL")
        if not self.apple_bundle_id:
            missing.append("APPLE_BUNDLE_ID")
        return missing
