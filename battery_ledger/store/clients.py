"""boto3 istemci fabrikaları. Endpoint verilirse DynamoDB Local kullanılır."""

from __future__ import annotations

from typing import Any

import boto3

from battery_ledger.config import BOTO_CONFIG, Settings


def dynamodb_client(settings: Settings) -> Any:
    return boto3.client(
        "dynamodb",
        region_name=settings.region,
        endpoint_url=settings.endpoint_url,
        config=BOTO_CONFIG,
    )


def streams_client(settings: Settings) -> Any:
    return boto3.client(
        "dynamodbstreams",
        region_name=settings.region,
        endpoint_url=settings.endpoint_url,
        config=BOTO_CONFIG,
    )


def sns_client(settings: Settings) -> Any:
    return boto3.client("sns", region_name=settings.region, config=BOTO_CONFIG)
