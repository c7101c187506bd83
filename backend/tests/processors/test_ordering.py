"""
test_ordering.py - (block_height, log_position) is the only happened-before.

The stored Asset row must equal a fold of its processed events in that
order, no matter the order the ledger delivered them in or how the range
was chunked into sub-batches.
"""

import random

from lineage_indexer.ingestion.decoder import EventDecoder
from lineage_indexer.ingestion.service import IngestService
from lineage_indexer.models import AssetStatus, Operation

from tests.factories import (
    FakeLedgerSource,
    asset_id,
    create,
    get_asset,
    inactivate,
    owner,
    transfer,
    update,
)

A = asset_id(0xA)


def _lifecycle():
    return [
        create(A, block=1, amount=1, owner_address=owner(1), location="l0"),
        update(A, block=2, log_index=0, amount=2, location="l1"),
        update(A, block=2, log_index=1, amount=3, location="l2"),
        transfer(A, block=2, log_index=2, new_owner=owner(2), location="l3"),
        update(A, block=4, log_index=5, amount=4, location="l4"),
        update(A, block=4, log_index=0, amount=5, location="l5"),
        transfer(A, block=6, new_owner=owner(3), location="l6"),
        inactivate(A, block=7, location="l7"),
    ]


def _fold(logs):
    """Reference fold over the ledger order."""
    state = {}
    for log in sorted(logs, key=lambda log: (log.block_number, log.log_index)):
        event = EventDecoder().decode(log)
        if event.operation is Operation.CREATE:
            state = {"amount": event.amount, "owner": event.owner, "location": event.location,
                     "status": AssetStatus.ACTIVE.value}
        elif event.operation is Operation.UPDATE:
            state.update(amount=event.amount, location=event.location)
        elif event.operation is Operation.TRANSFER:
            state.update(owner=event.owner, location=event.location)
        elif event.operation is Operation.INACTIVATE:
            state.update(status=AssetStatus.INACTIVE.value)
            if event.location:
                state.update(location=event.location)
    return state


class TestFoldOrder:
    def test_shuffled_delivery_matches_fold(self):
        logs = _lifecycle()
        shuffled = list(logs)
        random.Random(7).shuffle(shuffled)

        IngestService(FakeLedgerSource(shuffled)).ingest(0, 7)

        row = get_asset(A)
        expected = _fold(logs)
        assert {
            "amount": row.amount,
            "owner": row.owner,
            "location": row.location,
            "status": row.status,
        } == expected
        # log_index 5 precedes log_index 0 in delivery, but not in ledger order
        assert expected["location"] == "l7"

    def test_same_block_position_order(self):
        logs = _lifecycle()[:6]
        IngestService(FakeLedgerSource(reversed(logs))).ingest(0, 4)

        # Block 4: position 0 (amount 5) then position 5 (amount 4)
        assert get_asset(A).amount == 4

    def test_chunking_does_not_change_result(self):
        logs = _lifecycle()
        IngestService(FakeLedgerSource(logs), batch_size=1).ingest(0, 7)
        chunked = get_asset(A)

        assert chunked.amount == _fold(logs)["amount"]
        assert chunked.status == "INACTIVE"
