"""
Centralized AWS client factory with lazy initialization.

Reduces cold start overhead by deferring boto3 client/resource creation
until first use. All Lambdas share the same pattern.
"""

import os

_dynamodb = None
_secretsmanager = None


def get_dynamodb(endpoint_url: str | None = None):
    """Get DynamoDB resource, creating it lazily on first use.

    ``endpoint_url`` points the resource at a non-AWS endpoint (DynamoDB Local).
    Falls back to the DYNAMODB_ENDPOINT_URL environment variable.
    """
    global _dynamodb
    if _dynamodb is None:
        import boto3
        endpoint_url = endpoint_url or os.environ.get("DYNAMODB_ENDPOINT_URL") or None
        _dynamodb = boto3.resource("dynamodb", endpoint_url=endpoint_url)
    return _dynamodb


def get_secretsmanager():
    """Get Secrets Manager client, creating it lazily on first use."""
    global _secretsmanager
    if _secretsmanager is None:
        import boto3
        _secretsmanager = boto3.client("secretsmanager")
    return _secretsmanager


def reset_clients():
    """Reset all cached clients. Used in tests for clean state."""
    global _dynamodb, _secretsmanager
    _dynamodb = None
    _secretsmanager = None
