from __future__ import annotations

from typing import Any, Callable, TypeVar

from botocore.exceptions import BotoCoreError, ClientError

from ...observability.logging import get_logger
from .errors import (
    BackendFailure,
    DdbConflict,
    DdbError,
    DdbInternal,
    DdbThrottled,
    DdbUnavailable,
    DdbValidation,
)

T = TypeVar("T")

log = get_logger("hotspot.ddb")


# Reported as retryable; retrying is the caller's decision.
_RETRYABLE_CODES = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
    "InternalServerError",
    "ServiceUnavailable",
}


def _aws_request_id_from_client_error(e: ClientError) -> str | None:
    try:
        return (e.response or {}).get("ResponseMetadata", {}).get("RequestId")
    except Exception:
        return None


def _err_code_from_client_error(e: ClientError) -> str | None:
    try:
        return (e.response or {}).get("Error", {}).get("Code")
    except Exception:
        return None


def map_backend_error(
    *,
    operation: str,
    table_name: str | None,
    key: dict[str, Any] | None,
    exc: Exception,
) -> DdbError:
    if isinstance(exc, DdbError):
        return exc

    if isinstance(exc, ClientError):
        code = _err_code_from_client_error(exc) or ""
        aws_request_id = _aws_request_id_from_client_error(exc)

        if code == "ConditionalCheckFailedException":
            return DdbConflict(
                message="DynamoDB conditional check failed",
                operation=operation,
                table_name=table_name,
                key=key,
                aws_request_id=aws_request_id,
                retryable=False,
                cause=exc,
            )

        if code in ("ValidationException", "ParamValidationError"):
            return DdbValidation(
                message="DynamoDB request validation failed",
                operation=operation,
                table_name=table_name,
                key=key,
                aws_request_id=aws_request_id,
                retryable=False,
                cause=exc,
            )

        if code in ("AccessDeniedException", "UnrecognizedClientException", "ResourceNotFoundException"):
            return DdbUnavailable(
                message=f"DynamoDB table unavailable ({code})",
                operation=operation,
                table_name=table_name,
                key=key,
                aws_request_id=aws_request_id,
                retryable=False,
                cause=exc,
            )

        if code in _RETRYABLE_CODES:
            return DdbThrottled(
                message="DynamoDB request throttled or unavailable",
                operation=operation,
                table_name=table_name,
                key=key,
                aws_request_id=aws_request_id,
                retryable=True,
                cause=exc,
            )

        return DdbInternal(
            message=f"DynamoDB request failed ({code or 'ClientError'})",
            operation=operation,
            table_name=table_name,
            key=key,
            aws_request_id=aws_request_id,
            retryable=False,
            cause=exc,
        )

    if isinstance(exc, BotoCoreError):
        return DdbUnavailable(
            message="DynamoDB client error",
            operation=operation,
            table_name=table_name,
            key=key,
            retryable=True,
            cause=exc,
        )

    return DdbInternal(
        message="Unexpected DynamoDB error",
        operation=operation,
        table_name=table_name,
        key=key,
        retryable=False,
        cause=exc,
    )


def ddb_call(
    operation: str,
    fn: Callable[[], T],
    *,
    table_name: str | None = None,
    key: dict[str, Any] | None = None,
) -> T:
    """Run one backend call, translating failures into the DdbError taxonomy.

    There is no retry here. botocore's transport retries are client config
    (see client.botocore_config); anything surfacing past them is raised.
    """
    try:
        return fn()
    except Exception as e:  # noqa: BLE001
        mapped = map_backend_error(operation=operation, table_name=table_name, key=key, exc=e)
        if isinstance(mapped, BackendFailure):
            log.warning(
                "ddb_call_failed",
                operation=operation,
                table_name=table_name,
                error_type=type(mapped).__name__,
                retryable=mapped.retryable,
                aws_request_id=mapped.aws_request_id,
                cause=repr(e),
            )
        if mapped is e:
            raise
        raise mapped from e
