"""
Tests for configuration loading and service wiring.
"""

from unittest.mock import MagicMock, patch

import stripe
from moto import mock_aws

from shared.config import Settings
from shared.service import build_service, get_service, set_service


class TestSettings:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_env")
        monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_env")
        monkeypatch.setenv("STRIPE_PRICE_ID", "price_env")
        monkeypatch.setenv("BASE_URL", "https://premium.example.com/")
        monkeypatch.setenv("PAYMENT_GRACE_PERIOD_DAYS", "5")
        monkeypatch.setenv("APPLE_BUNDLE_ID", "com.example.app")
        monkeypatch.setenv("APPLE_ENABLE_ONLINE_CHECKS", "false")
        monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example.com,https://b.example.com/")

        settings = Settings.from_env()

        assert settings.stripe_secret_key == "sk_env"
        assert settings.base_url == "https://premium.example.com"
        assert settings.grace_period_days == 5
        assert settings.apple_enable_online_checks is False
        assert settings.allowed_origins == ["https://a.example.com", "https://b.example.com"]
        assert settings.missing_required() == []

    def test_defaults(self, monkeypatch):
        for name in ("STRIPE_SECRET_KEY", "PAYMENT_GRACE_PERIOD_DAYS", "USERS_TABLE", "LOCAL_CACHE_PATH"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings.from_env()

        assert settings.grace_period_days == 3
        assert settings.users_table == "premium-sync-users"
        assert settings.local_cache_path == "/tmp/premium-sync-cache.json"

    def test_bad_integer_falls_back(self, monkeypatch):
        monkeypatch.setenv("PAYMENT_GRACE_PERIOD_DAYS", "three")

        assert Settings.from_env().grace_period_days == 3

    def test_missing_required(self, monkeypatch):
        monkeypatch.delenv("BASE_URL", raising=False)

        missing = Settings().missing_required()

        assert missing == [
            "STRIPE_SECRET_KEY",
            "STRIPE_WEBHOOK_SECRET",
            "STRIPE_PRICE_ID",
            "BASE_URL",
            "APPLE_BUNDLE_ID",
        ]

    def test_base_url_comes_from_settings(self, monkeypatch):
        monkeypatch.delenv("BASE_URL", raising=False)

        settings = Settings(base_url="https://premium.example.com", allowed_origins=["https://a.example.com"])

        assert "BASE_URL" not in settings.missing_required()
        assert settings.public_url == "https://premium.example.com"
        assert settings.cors_origins() == ["https://a.example.com", "https://premium.example.com"]

    def test_unset_base_url_falls_back_for_redirects(self):
        settings = Settings()

        assert settings.public_url == "http://localhost:3000"
        assert settings.cors_origins() == []


class TestBuildService:
    @mock_aws
    def test_wires_components(self, users_table, test_settings):
        service = build_service(test_settings, table=users_table, apple_verifier=MagicMock())

        assert isinstance(service.stripe_client, stripe.StripeClient)
        assert service.provisioner is not None
        assert service.stripe_verifier.webhook_secret == "whsec_test_secret"
        assert service.dispatcher.grace_period_days == 3
        assert service.store.table is users_table

    @mock_aws
    def test_missing_stripe_config_leaves_components_unset(self, users_table, cache_path):
        settings = Settings(local_cache_path=cache_path)

        service = build_service(settings, table=users_table)

        assert service.stripe_client is None
        assert service.provisioner is None
        assert service.stripe_verifier is None
        assert service.apple_verifier is None

    @mock_aws
    def test_get_service_is_cached(self, users_table, test_settings):
        service = build_service(test_settings, table=users_table, apple_verifier=MagicMock())
        set_service(service)

        assert get_service() is service


SECRET_ARN_SETTINGS = {
    "stripe_secret_arn": "arn:aws:secretsmanager:us-east-1:123456789012:secret:stripe-key",
    "stripe_webhook_secret_arn": "arn:aws:secretsmanager:us-east-1:123456789012:secret:stripe-hook",
}


class TestStripeSecretRefresh:
    @mock_aws
    def test_failed_cold_start_read_recovers(self, users_table, cache_path):
        settings = Settings(local_cache_path=cache_path, **SECRET_ARN_SETTINGS)

        with patch(
            "shared.billing_utils._read_secret",
            side_effect=[None, None, "sk_live", "whsec_live"],
        ) as read_secret:
            set_service(build_service(settings, table=users_table, apple_verifier=MagicMock()))
            assert get_service().stripe_verifier is not None
            service = get_service()

        assert read_secret.call_count == 4
        assert service.stripe_verifier.webhook_secret == "whsec_live"
        assert isinstance(service.stripe_client, stripe.StripeClient)
        assert service.provisioner is not None
        assert service.dispatcher.stripe_client is service.stripe_client

    @mock_aws
    def test_rotated_webhook_secret_is_picked_up(self, users_table, cache_path, stripe_client):
        from shared.billing_utils import reset_stripe_secrets_cache

        settings = Settings(local_cache_path=cache_path, **SECRET_ARN_SETTINGS)

        with patch(
            "shared.billing_utils._read_secret",
            side_effect=["sk_live", "whsec_old", "sk_live", "whsec_new"],
        ):
            set_service(
                build_service(settings, table=users_table, stripe_client=stripe_client, apple_verifier=MagicMock())
            )
            # TTL expiry
            reset_stripe_secrets_cache()
            service = get_service()

        assert service.stripe_verifier.webhook_secret == "whsec_new"
        # API key unchanged, so the existing client is kept
        assert service.stripe_client is stripe_client

    @mock_aws
    def test_unchanged_secrets_keep_service(self, users_table, test_settings):
        service = build_service(test_settings, table=users_table, apple_verifier=MagicMock())
        set_service(service)

        with patch("shared.billing_utils._read_secret") as read_secret:
            assert get_service() is service

        read_secret.assert_not_called()
