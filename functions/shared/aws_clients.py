"""
Centralized AWS client factory with lazy initialization.

Reduces cold start overhead by deferring boto3 client/resource creation
until first use. All Lambdas share the same pattern.
"""

_dynamodb = None
_secretsmanager = None
_sns = None
_cloudwatch = None


def get_dynamodb():
    """Get DynamoDB resource, creating it lazily on first use."""
    global _dynamodb
    if _dynamodb is None:
        import boto3
        _dynamodb = boto3.resource("dynamodb")
    return _dynamodb


def get_secretsmanager():
    """Get Secrets Manager client, creating it lazily on first use."""
    global _secretsmanager
    if _secretsmanager is None:
        import boto3
        _secretsmanager = boto3.client("secretsmanager")
    return _secretsmanager


def get_sns():
    """Get SNS client, creating it lazily on first use."""
    global _sns
    if _sns is None:
        import boto3
        _sns = boto3.client("sns")
    return _sns


def get_cloudwatch():
    """Get CloudWatch client, creating it lazily on first use."""
    global _cloudwatch
    if _cloudwatch is None:
        import boto3
        _cloudwatch = boto3.client("cloudwatch")
    return _cloudwatch


def reset_clients():
    """Reset all cached clients. Used in tests for clean state."""
    global _dynamodb, _secretsmanager, _sns, _cloudwatch
    _dynamodb = None
    _secretsmanager = None
    _sns = None
    _cloudwatch = None
