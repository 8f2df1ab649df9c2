from __future__ import annotations

from functools import lru_cache

import boto3
from botocore.config import Config

from ...settings import settings


@lru_cache(maxsize=1)
def botocore_config() -> Config:
    # Transport-level retries and timeouts belong to the client; the data layer
    # above never retries on its own.
    return Config(
        retries={"max_attempts": int(settings.ddb_max_attempts), "mode": "adaptive"},
        connect_timeout=settings.ddb_connect_timeout_s,
        read_timeout=settings.ddb_read_timeout_s,
    )


@lru_cache(maxsize=1)
def dynamodb_resource():
    return boto3.resource(
        "dynamodb",
        region_name=settings.aws_region,
        endpoint_url=settings.ddb_endpoint_url or None,
        config=botocore_config(),
    )


def table_resource(table_name: str):
    return dynamodb_resource().Table(table_name)
