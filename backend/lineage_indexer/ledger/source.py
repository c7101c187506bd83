"""
source.py - Ledger Event Source.

The indexer only needs two calls from the ledger: the current head height and
the logs of a block range. Any object with that shape is a LedgerEventSource;
Web3LedgerSource is the JSON-RPC implementation.
"""

import logging
from typing import Any, Protocol

from web3 import Web3
from web3.exceptions import Web3Exception

from lineage_indexer.config import settings
from lineage_indexer.errors import LedgerUnavailableError
from lineage_indexer.schemas.events import RawLog

logger = logging.getLogger(__name__)


class LedgerEventSource(Protocol):
    def latest_height(self) -> int: ...

    def get_logs(self, from_height: int, to_height: int) -> list[RawLog]: ...


def _hex(value: Any) -> str:
    if isinstance(value, str):
        return value
    return Web3.to_hex(value)


def to_raw_log(entry: Any) -> RawLog:
    """Normalize a web3 log entry (AttributeDict with HexBytes) into a RawLog."""
    return RawLog(
        address=entry.get("address"),
        topics=[_hex(t) for t in entry.get("topics", [])],
        data=_hex(entry.get("data", "0x")),
        block_number=entry["blockNumber"],
        transaction_hash=_hex(entry["transactionHash"]),
        log_index=entry["logIndex"],
        removed=bool(entry.get("removed", False)),
    )


class Web3LedgerSource:
    """JSON-RPC ledger source. RPC failures surface as LedgerUnavailableError."""

    def __init__(
        self,
        rpc_url: str | None = None,
        contract_address: str | None = None,
        timeout: int | None = None,
        w3: Web3 | None = None,
    ):
        self.rpc_url = rpc_url or settings.RPC_URL
        self.timeout = timeout or settings.RPC_TIMEOUT_SECONDS
        address = contract_address if contract_address is not None else settings.ASSET_REGISTRY_ADDRESS
        self.contract_address = Web3.to_checksum_address(address) if address else None
        self.w3 = w3 or Web3(
            Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": self.timeout})
        )

    def latest_height(self) -> int:
        try:
            return int(self.w3.eth.block_number)
        except (Web3Exception, OSError, ValueError) as e:
            raise LedgerUnavailableError(
                f"Failed to read head height: {e}",
                {"rpc_url": self.rpc_url},
            ) from e

    def get_logs(self, from_height: int, to_height: int) -> list[RawLog]:
        params: dict[str, Any] = {"fromBlock": from_height, "toBlock": to_height}
        if self.contract_address:
            params["address"] = self.contract_address

        try:
            entries = self.w3.eth.get_logs(params)
        except (Web3Exception, OSError, ValueError) as e:
            raise LedgerUnavailableError(
                f"Failed to fetch logs {from_height}-{to_height}: {e}",
                {"rpc_url": self.rpc_url, "from_height": from_height, "to_height": to_height},
            ) from e

        logs = [to_raw_log(entry) for entry in entries]
        logger.debug("Fetched %d logs for blocks %d-%d", len(logs), from_height, to_height)
        return sorted(logs, key=lambda log: (log.block_number, log.log_index))
