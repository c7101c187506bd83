"""
errors.py - Error taxonomy.

Errors are contracts, not strings. Every raised error carries a
machine-readable ``code``, a human ``message`` and a ``details`` dict.

FAILURE CLASSES:
- Transient infra (ledger unavailable, processing timeout) -> retried next tick
- Structural violations -> sub-batch rolled back, retried unchanged next tick
- Query-time errors -> raised to the caller, never touch ingestion state
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    # Transient infrastructure
    LEDGER_UNAVAILABLE = "LEDGER_UNAVAILABLE"
    PROCESSING_TIMEOUT = "PROCESSING_TIMEOUT"

    # Structural violations (fatal to the sub-batch)
    ASSET_NOT_FOUND = "ASSET_NOT_FOUND"
    ASSET_ALREADY_EXISTS = "ASSET_ALREADY_EXISTS"
    ASSET_ALREADY_INACTIVE = "ASSET_ALREADY_INACTIVE"
    ASSET_INACTIVE = "ASSET_INACTIVE"
    MISSING_RELATED_ASSETS = "MISSING_RELATED_ASSETS"
    RELATED_AMOUNTS_MISMATCH = "RELATED_AMOUNTS_MISMATCH"
    NOT_GROUP_MEMBER = "NOT_GROUP_MEMBER"

    # Query-time
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class IndexerError(Exception):
    """Base exception for every typed failure raised by the indexer."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class LedgerUnavailableError(IndexerError):
    """The ledger RPC endpoint failed or timed out."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(ErrorCode.LEDGER_UNAVAILABLE, message, details)


class ProcessingTimeout(IndexerError):
    """The processing transaction ran past its deadline."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(ErrorCode.PROCESSING_TIMEOUT, message, details)


class StructuralViolation(IndexerError):
    """An event contradicts the current projection (missing asset, bad arity...)."""

    pass


class QueryError(IndexerError):
    """Base class for read-path errors."""

    pass


class InvalidInputError(QueryError):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(ErrorCode.INVALID_INPUT, message, details)


class NotFoundError(QueryError):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(ErrorCode.NOT_FOUND, message, details)


class InternalQueryError(QueryError):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(ErrorCode.INTERNAL_ERROR, message, details)


# Structural violation factories, one per code
def asset_not_found(asset_id: str, operation: str) -> StructuralViolation:
    return StructuralViolation(
        ErrorCode.ASSET_NOT_FOUND,
        f"Asset {asset_id} does not exist",
        {"asset_id": asset_id, "operation": operation},
    )


def asset_already_exists(asset_id: str, operation: str) -> StructuralViolation:
    return StructuralViolation(
        ErrorCode.ASSET_ALREADY_EXISTS,
        f"Asset {asset_id} already exists",
        {"asset_id": asset_id, "operation": operation},
    )


def asset_already_inactive(asset_id: str) -> StructuralViolation:
    return StructuralViolation(
        ErrorCode.ASSET_ALREADY_INACTIVE,
        f"Asset {asset_id} is already inactive",
        {"asset_id": asset_id},
    )


def asset_inactive(asset_id: str, operation: str) -> StructuralViolation:
    return StructuralViolation(
        ErrorCode.ASSET_INACTIVE,
        f"{operation} requires {asset_id} to be active",
        {"asset_id": asset_id, "operation": operation},
    )


def missing_related_assets(asset_id: str, operation: str) -> StructuralViolation:
    return StructuralViolation(
        ErrorCode.MISSING_RELATED_ASSETS,
        f"{operation} on {asset_id} carries no related asset ids",
        {"asset_id": asset_id, "operation": operation},
    )


def related_amounts_mismatch(
    asset_id: str, operation: str, ids: int, amounts: int
) -> StructuralViolation:
    return StructuralViolation(
        ErrorCode.RELATED_AMOUNTS_MISMATCH,
        f"{operation} on {asset_id} has {ids} related ids but {amounts} amounts",
        {
            "asset_id": asset_id,
            "operation": operation,
            "related_asset_ids": ids,
            "related_amounts": amounts,
        },
    )


def not_group_member(asset_id: str, group_id: str) -> StructuralViolation:
    return StructuralViolation(
        ErrorCode.NOT_GROUP_MEMBER,
        f"Asset {asset_id} was never grouped into {group_id}",
        {"asset_id": asset_id, "group_id": group_id},
    )
