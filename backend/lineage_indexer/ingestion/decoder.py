"""
decoder.py - Event Decoder.

Turns raw ledger logs into DecodedEvent records and hands them to the Raw
Event Log.

SKIP RULES (diagnostic, never fatal):
- Logs flagged `removed` by a chain reorganization
- Unknown topics[0] signatures
- Operation codes outside the eight projected kinds
- Payloads that fail ABI decoding
"""

import logging
from collections.abc import Iterable

import eth_abi
from eth_abi.exceptions import DecodingError
from sqlalchemy.orm import Session as DBSession

from lineage_indexer.ingestion.event_log import RawEventLog
from lineage_indexer.ledger.abi import (
    ASSET_OPERATION_DATA_TYPES,
    EVENT_SIGNATURES,
    OPERATION_CODES,
)
from lineage_indexer.schemas.events import DecodedEvent, DecodeSummary, RawLog

logger = logging.getLogger(__name__)


def _bytes32_hex(value: bytes) -> str:
    return "0x" + value.hex()


def _hex_to_bytes(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


class EventDecoder:
    def __init__(self, event_log: RawEventLog | None = None):
        self.event_log = event_log or RawEventLog()

    def decode(self, log: RawLog) -> DecodedEvent | None:
        """
        Decode one AssetOperationExecuted log.

        Returns None (after logging why) for any log that must be skipped.
        """
        coordinates = (log.transaction_hash, log.log_index, log.block_number)

        if log.removed:
            logger.warning("Skipping removed log tx=%s index=%d block=%d", *coordinates)
            return None

        if not log.topics:
            logger.info("Skipping anonymous log tx=%s index=%d block=%d", *coordinates)
            return None

        event_name = EVENT_SIGNATURES.get(log.topics[0].lower())
        if event_name is None:
            logger.info(
                "Unrecognized event signature %s tx=%s index=%d block=%d",
                log.topics[0], *coordinates,
            )
            return None

        try:
            if len(log.topics) != 4:
                raise ValueError(f"expected 4 topics, got {len(log.topics)}")
            (
                op_code,
                status,
                timestamp,
                related_ids,
                related_amounts,
                location,
                amount,
                data_hash,
            ) = eth_abi.decode(ASSET_OPERATION_DATA_TYPES, _hex_to_bytes(log.data))
            (owner,) = eth_abi.decode(["address"], _hex_to_bytes(log.topics[3]))
            channel = _bytes32_hex(_hex_to_bytes(log.topics[1]))
            asset_id = _bytes32_hex(_hex_to_bytes(log.topics[2]))
        except (DecodingError, ValueError, TypeError) as e:
            logger.warning(
                "Failed to decode %s tx=%s index=%d block=%d: %s",
                event_name, *coordinates, e,
            )
            return None

        operation = OPERATION_CODES.get(op_code)
        if operation is None:
            logger.info(
                "Skipping unsupported operation code %d tx=%s index=%d block=%d",
                op_code, *coordinates,
            )
            return None

        return DecodedEvent(
            source_tx_id=log.transaction_hash.lower(),
            log_position=log.log_index,
            asset_id=asset_id.lower(),
            operation=operation,
            status=status,
            block_height=log.block_number,
            block_timestamp=timestamp,
            channel=channel.lower(),
            owner=owner.lower(),
            location=location,
            amount=amount,
            data_hash=_bytes32_hex(data_hash),
            related_asset_ids=[_bytes32_hex(r) for r in related_ids],
            related_amounts=list(related_amounts),
        )

    def persist(self, db: DBSession, logs: Iterable[RawLog]) -> DecodeSummary:
        """
        Decode and append logs to the Raw Event Log inside the caller's transaction.

        Re-delivered logs are counted as duplicates, never raised.
        """
        summary = DecodeSummary()
        for log in logs:
            decoded = self.decode(log)
            if decoded is None:
                summary.unrecognized += 1
                continue

            if self.event_log.append(db, decoded):
                summary.stored += 1
            else:
                summary.duplicates += 1
                logger.debug(
                    "Event already ingested tx=%s index=%d",
                    decoded.source_tx_id, decoded.log_position,
                )
        return summary
