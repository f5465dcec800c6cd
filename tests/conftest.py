"""
Shared pytest fixtures for Premium Sync tests.
"""

import hashlib
import hmac
import json
import os
import sys
import time
from unittest.mock import MagicMock

import boto3
import pytest
from moto import mock_aws

# Add functions directory to Python path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "functions"))

USERS_TABLE = "premium-sync-users"
WEBHOOK_SECRET = "whsec_test_secret"


def pytest_configure(config):
    """Set AWS credentials before test collection.

    This runs before test collection starts, ensuring boto3 resource
    creation during imports doesn't fail with NoRegionError.
    """
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
    os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
    os.environ.setdefault("AWS_REGION", "us-east-1")


@pytest.fixture(autouse=True)
def aws_credentials():
    """Set fake AWS credentials for all tests."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
    os.environ["AWS_REGION"] = "us-east-1"


@pytest.fixture(autouse=True)
def reset_aws_clients():
    """Reset shared AWS client singletons between tests."""
    yield
    from shared.aws_clients import reset_clients

    reset_clients()


@pytest.fixture(autouse=True)
def reset_service_state():
    """Drop the container-level service and cached Stripe secrets between tests."""
    from shared.billing_utils import reset_stripe_secrets_cache
    from shared.service import set_service

    set_service(None)
    reset_stripe_secrets_cache()
    yield
    set_service(None)
    reset_stripe_secrets_cache()


def create_dynamodb_tables(dynamodb):
    """Create the users table with its GSIs.

    Args:
        dynamodb: boto3 DynamoDB resource
    """
    dynamodb.create_table(
        TableName=USERS_TABLE,
        KeySchema=[{"AttributeName": "pk", "KeyType": "HASH"}],
        AttributeDefinitions=[
            {"AttributeName": "pk", "AttributeType": "S"},
            {"AttributeName": "email", "AttributeType": "S"},
            {"AttributeName": "stripe_customer_id", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": "email-index",
                "KeySchema": [{"AttributeName": "email", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
            {
                "IndexName": "stripe-customer-index",
                "KeySchema": [{"AttributeName": "stripe_customer_id", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        BillingMode="PAY_PER_REQUEST",
    )


@pytest.fixture
def mock_dynamodb():
    """Provide mocked DynamoDB with tables."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")
        create_dynamodb_tables(dynamodb)
        yield dynamodb


@pytest.fixture
def users_table(mock_dynamodb):
    """Users table seeded with one web user, one mobile user and one existing customer."""
    table = mock_dynamodb.Table(USERS_TABLE)

    table.put_item(
        Item={
            "pk": "user_web123",
            "email": "web@example.com",
            "is_premium": False,
            "created_at": "2026-01-01T00:00:00+00:00",
        }
    )
    table.put_item(
        Item={
            "pk": "tok_mobile123",
            "is_premium": False,
            "created_at": "2026-01-01T00:00:00+00:00",
        }
    )
    table.put_item(
        Item={
            "pk": "user_customer123",
            "email": "customer@example.com",
            "stripe_customer_id": "cus_existing",
            "stripe_subscription_id": "sub_existing",
            "is_premium": True,
            "platform": "stripe",
            "current_period_end": "2099-01-01T00:00:00+00:00",
            "created_at": "2026-01-01T00:00:00+00:00",
        }
    )

    return table


@pytest.fixture
def cache_path(tmp_path):
    """Location of the local cache file for one test."""
    return str(tmp_path / "premium-cache.json")


@pytest.fixture
def stripe_client():
    """Stripe client double. Return values are set per test."""
    return MagicMock()


@pytest.fixture
def test_settings(cache_path):
    from shared.config import Settings

    return Settings(
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        stripe_price_id="price_premium",
        base_url="https://app.example.com",
        users_table=USERS_TABLE,
        local_cache_path=cache_path,
    )


@pytest.fixture
def apple_verifier():
    """Apple verifier double returning (notification, transaction) per test."""
    return MagicMock()


@pytest.fixture
def service(users_table, stripe_client, test_settings, apple_verifier):
    """Fully wired service installed as the container service for handler tests."""
    from shared.service import build_service, set_service

    wired = build_service(
        test_settings,
        table=users_table,
        stripe_client=stripe_client,
        apple_verifier=apple_verifier,
    )
    set_service(wired)
    return wired


@pytest.fixture
def api_gateway_event():
    """Base API Gateway event for Lambda handler tests."""
    return {
        "httpMethod": "GET",
        "headers": {},
        "pathParameters": {},
        "queryStringParameters": {},
        "body": None,
        "isBase64Encoded": False,
        "requestContext": {
            "requestId": "req-test-123",
            "identity": {"sourceIp": "127.0.0.1"},
        },
    }


def sign_stripe_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header value for a payload."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def stripe_event(event_type: str, obj: dict, event_id: str = "evt_test123") -> dict:
    """Minimal Stripe event envelope."""
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }


@pytest.fixture
def signed_webhook_event(api_gateway_event):
    """Factory: API Gateway event carrying a correctly signed Stripe event."""

    def _build(event: dict, secret: str = WEBHOOK_SECRET) -> dict:
        payload = json.dumps(event)
        api_gateway_event["httpMethod"] = "POST"
        api_gateway_event["body"] = payload
        api_gateway_event["headers"] = {"Stripe-Signature": sign_stripe_payload(payload, secret)}
        return api_gateway_event

    return _build
