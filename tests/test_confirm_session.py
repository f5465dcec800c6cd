"""
Tests for POST /confirm-session.
"""

import json
from datetime import datetime, timezone

import stripe
from moto import mock_aws

FUTURE_PERIOD_END = int(datetime(2099, 1, 1, tzinfo=timezone.utc).timestamp())


def _post(api_gateway_event, body):
    api_gateway_event["httpMethod"] = "POST"
    api_gateway_event["body"] = json.dumps(body)
    return api_gateway_event


def _session(**overrides):
    session = {
        "id": "cs_1",
        "status": "complete",
        "customer": "cus_web",
        "subscription": "sub_web",
        "client_reference_id": None,
        "customer_details": {"email": "web@example.com"},
        "metadata": {"user_email": "web@example.com"},
    }
    session.update(overrides)
    return session


class TestConfirmSessionHandler:
    @mock_aws
    def test_applies_checkout_reconciliation(self, service, api_gateway_event, stripe_client, users_table):
        from api.confirm_session import handler

        stripe_client.checkout.sessions.retrieve.return_value = _session()
        stripe_client.subscriptions.retrieve.return_value = {
            "status": "active",
            "current_period_end": FUTURE_PERIOD_END,
        }

        result = handler(_post(api_gateway_event, {"session_id": "cs_1", "email": "web@example.com"}), {})

        assert result["statusCode"] == 200
        body = json.loads(result["body"])
        assert body["action"] == "checkout_subscription"
        assert body["applied"] is True
        assert body["patch"]["is_premium"] is True
        stripe_client.checkout.sessions.retrieve.assert_called_once_with("cs_1")
        item = users_table.get_item(Key={"pk": "user_web123"})["Item"]
        assert item["is_premium"] is True
        assert item["stripe_subscription_id"] == "sub_web"

    @mock_aws
    def test_mobile_session_confirmed_by_token(self, service, api_gateway_event, stripe_client, users_table):
        from api.confirm_session import handler

        stripe_client.checkout.sessions.retrieve.return_value = _session(
            client_reference_id="tok_mobile123",
            subscription=None,
            customer="cus_mobile",
        )

        result = handler(_post(api_gateway_event, {"session_id": "cs_1", "user_id": "tok_mobile123"}), {})

        assert result["statusCode"] == 200
        assert json.loads(result["body"])["action"] == "checkout_customer_only"
        assert users_table.get_item(Key={"pk": "tok_mobile123"})["Item"]["stripe_customer_id"] == "cus_mobile"

    @mock_aws
    def test_other_users_session_is_forbidden(self, service, api_gateway_event, stripe_client, users_table):
        from api.confirm_session import handler

        stripe_client.checkout.sessions.retrieve.return_value = _session()
        before = users_table.scan()["Items"]

        result = handler(_post(api_gateway_event, {"session_id": "cs_1", "email": "customer@example.com"}), {})

        assert result["statusCode"] == 403
        assert json.loads(result["body"])["error"]["code"] == "identity_mismatch"
        assert users_table.scan()["Items"] == before

    @mock_aws
    def test_incomplete_session_returns_409(self, service, api_gateway_event, stripe_client):
        from api.confirm_session import handler

        stripe_client.checkout.sessions.retrieve.return_value = _session(status="open")

        result = handler(_post(api_gateway_event, {"session_id": "cs_1", "email": "web@example.com"}), {})

        assert result["statusCode"] == 409
        stripe_client.subscriptions.retrieve.assert_not_called()

    @mock_aws
    def test_unknown_session_returns_404(self, service, api_gateway_event, stripe_client):
        from api.confirm_session import handler

        stripe_client.checkout.sessions.retrieve.side_effect = stripe.InvalidRequestError(
            "No such checkout.session: 'cs_missing'", "id", code="resource_missing", http_status=404
        )

        result = handler(_post(api_gateway_event, {"session_id": "cs_missing", "email": "web@example.com"}), {})

        assert result["statusCode"] == 404

    @mock_aws
    def test_missing_session_id_returns_400(self, service, api_gateway_event):
        from api.confirm_session import handler

        result = handler(_post(api_gateway_event, {"email": "web@example.com"}), {})

        assert result["statusCode"] == 400
        assert json.loads(result["body"])["error"]["code"] == "missing_session_id"

    @mock_aws
    def test_missing_identity_returns_400(self, service, api_gateway_event):
        from api.confirm_session import handler

        result = handler(_post(api_gateway_event, {"session_id": "cs_1"}), {})

        assert result["statusCode"] == 400
        assert json.loads(result["body"])["error"]["code"] == "missing_identity"
