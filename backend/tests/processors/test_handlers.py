"""
test_handlers.py - Per-operation transitions and structural checks.

Every structural violation must carry its machine-readable code and abort
the sub-batch before anything is committed.
"""

import pytest
from sqlalchemy import func, select

from lineage_indexer.errors import ErrorCode, StructuralViolation
from lineage_indexer.ingestion.decoder import EventDecoder
from lineage_indexer.models import Operation, OperationEventRow
from lineage_indexer.processors.engine import OperationProcessorEngine

from tests.factories import (
    ZERO_HASH,
    asset_id,
    create,
    data_hash,
    get_asset,
    group,
    inactivate,
    make_log,
    owner,
    split,
    transfer,
    transform,
    ungroup,
    update,
)

A, B, C, D = asset_id(0xA), asset_id(0xB), asset_id(0xC), asset_id(0xD)


def _apply(db, *logs) -> int:
    """Persist logs and process everything up to the highest block, committing."""
    EventDecoder().persist(db, logs)
    db.commit()
    applied = OperationProcessorEngine().process_range(
        db, 0, max(log.block_number for log in logs)
    )
    db.commit()
    return applied


def _violation(db, *logs) -> StructuralViolation:
    with pytest.raises(StructuralViolation) as exc_info:
        _apply(db, *logs)
    db.rollback()
    return exc_info.value


class TestSimpleOperations:
    def test_create(self, db):
        _apply(db, create(A, block=1, amount=10, owner_address=owner(4), location="yard"))

        row = get_asset(A)
        assert row.status == "ACTIVE"
        assert row.amount == 10
        assert row.owner == owner(4)
        assert row.origin_owner == owner(4)
        assert row.location == "yard"
        assert row.parent_asset_id is None

    def test_update_sets_amount_location_hash(self, db):
        _apply(
            db,
            create(A, block=1, amount=10),
            update(A, block=2, amount=25, location="lab", data_hash_hex=data_hash(5)),
        )

        row = get_asset(A)
        assert row.amount == 25
        assert row.location == "lab"
        assert row.data_hash == data_hash(5)

    def test_transfer_changes_owner_not_origin(self, db):
        _apply(
            db,
            create(A, block=1, owner_address=owner(1), data_hash_hex=data_hash(1)),
            transfer(A, block=2, new_owner=owner(2), location="port"),
        )

        row = get_asset(A)
        assert row.owner == owner(2)
        assert row.origin_owner == owner(1)
        assert row.location == "port"
        # Zero hash means "not supplied"
        assert row.data_hash == data_hash(1)

    def test_transfer_with_hash(self, db):
        _apply(
            db,
            create(A, block=1, data_hash_hex=data_hash(1)),
            transfer(A, block=2, new_owner=owner(2), data_hash_hex=data_hash(2)),
        )
        assert get_asset(A).data_hash == data_hash(2)

    def test_inactivate_keeps_location_when_empty(self, db):
        _apply(db, create(A, block=1, location="yard"), inactivate(A, block=2, location=""))

        row = get_asset(A)
        assert row.status == "INACTIVE"
        assert row.location == "yard"

    def test_inactivate_updates_location_when_supplied(self, db):
        _apply(db, create(A, block=1), inactivate(A, block=2, location="landfill"))
        assert get_asset(A).location == "landfill"

    def test_transform_falls_back_to_event_amount(self, db):
        _apply(
            db,
            create(A, block=1),
            make_log(Operation.TRANSFORM, A, block=2, related_ids=[B], amount=33),
        )
        assert get_asset(B).amount == 33

    def test_split_children_take_event_owner_as_origin(self, db):
        _apply(
            db,
            create(A, block=1, owner_address=owner(1)),
            split(A, [B, C], [5, 5], block=2, owner_address=owner(2)),
        )

        assert get_asset(A).origin_owner == owner(1)
        assert get_asset(B).origin_owner == owner(2)
        assert get_asset(C).origin_owner == owner(2)

    def test_ungroup_subset_of_members(self, db):
        _apply(
            db,
            create(A, block=1),
            create(B, block=1, log_index=1),
            group(C, [A, B], [1, 1], block=2),
            ungroup(C, [A], block=3),
        )

        assert get_asset(C).status == "INACTIVE"
        assert get_asset(A).status == "ACTIVE"
        assert get_asset(B).status == "INACTIVE"

    def test_group_without_amounts(self, db):
        _apply(
            db,
            create(A, block=1),
            create(B, block=1, log_index=1),
            make_log(Operation.GROUP, C, block=2, related_ids=[A, B], amount=9),
        )
        assert get_asset(C).amount == 9

    def test_last_event_id_tracks_latest_event(self, db):
        _apply(db, create(A, block=1), update(A, block=2, amount=3))

        latest_id = db.execute(
            select(func.max(OperationEventRow.id)).where(OperationEventRow.asset_id == A)
        ).scalar_one()
        assert get_asset(A).last_event_id == latest_id


class TestStructuralViolations:
    def test_update_missing_asset(self, db):
        error = _violation(db, update(A, block=1))
        assert error.code is ErrorCode.ASSET_NOT_FOUND
        assert error.details["asset_id"] == A

    def test_transfer_missing_asset(self, db):
        assert _violation(db, transfer(A, block=1, new_owner=owner(2))).code is ErrorCode.ASSET_NOT_FOUND

    def test_create_existing_asset(self, db):
        error = _violation(db, create(A, block=1), create(A, block=2))
        assert error.code is ErrorCode.ASSET_ALREADY_EXISTS

    def test_inactivate_twice(self, db):
        error = _violation(db, create(A, block=1), inactivate(A, block=2), inactivate(A, block=3))
        assert error.code is ErrorCode.ASSET_ALREADY_INACTIVE

    def test_inactivate_missing(self, db):
        assert _violation(db, inactivate(A, block=1)).code is ErrorCode.ASSET_NOT_FOUND

    def test_split_inactive_parent(self, db):
        error = _violation(
            db, create(A, block=1), inactivate(A, block=2), split(A, [B], [1], block=3)
        )
        assert error.code is ErrorCode.ASSET_INACTIVE

    def test_split_amount_arity(self, db):
        error = _violation(db, create(A, block=1), split(A, [B, C], [1], block=2))
        assert error.code is ErrorCode.RELATED_AMOUNTS_MISMATCH
        assert error.details["related_asset_ids"] == 2
        assert error.details["related_amounts"] == 1

    def test_split_without_children(self, db):
        error = _violation(db, create(A, block=1), split(A, [], [], block=2))
        assert error.code is ErrorCode.MISSING_RELATED_ASSETS

    def test_transform_without_result(self, db):
        error = _violation(db, create(A, block=1), make_log(Operation.TRANSFORM, A, block=2))
        assert error.code is ErrorCode.MISSING_RELATED_ASSETS

    def test_transform_inactive_source(self, db):
        error = _violation(
            db, create(A, block=1), inactivate(A, block=2), transform(A, B, block=3)
        )
        assert error.code is ErrorCode.ASSET_INACTIVE

    def test_group_amount_arity(self, db):
        error = _violation(
            db,
            create(A, block=1),
            create(B, block=1, log_index=1),
            group(C, [A, B], [1, 2, 3], block=2, amount=6),
        )
        assert error.code is ErrorCode.RELATED_AMOUNTS_MISMATCH

    def test_group_missing_contributor(self, db):
        error = _violation(db, create(A, block=1), group(C, [A, B], [1, 1], block=2))
        assert error.code is ErrorCode.ASSET_NOT_FOUND

    def test_ungroup_inactive_group(self, db):
        error = _violation(
            db,
            create(A, block=1),
            create(B, block=1, log_index=1),
            group(C, [A, B], [1, 1], block=2),
            ungroup(C, [A, B], block=3),
            ungroup(C, [A, B], block=4),
        )
        assert error.code is ErrorCode.ASSET_INACTIVE

    def test_ungroup_cannot_revive_non_member(self, db):
        """An inactivated asset that was never in the group stays inactive."""
        _apply(
            db,
            create(A, block=1),
            create(B, block=1, log_index=1),
            create(D, block=1, log_index=2),
            group(C, [A, B], [1, 1], block=2),
            inactivate(D, block=3),
        )
        error = _violation(db, ungroup(C, [A, D], block=4))

        assert error.code is ErrorCode.NOT_GROUP_MEMBER
        assert error.details["asset_id"] == D
        assert error.details["group_id"] == C
        assert get_asset(D).status == "INACTIVE"
        assert get_asset(C).status == "ACTIVE"

    def test_violation_carries_event_coordinates(self, db):
        error = _violation(db, create(A, block=1), update(B, block=4, log_index=2))
        assert error.details["block_height"] == 4
        assert error.details["log_position"] == 2
        assert error.details["source_tx_id"].startswith("0x")


class TestZeroHash:
    def test_zero_hash_is_stored_verbatim_on_create(self, db):
        _apply(db, create(A, block=1))
        assert get_asset(A).data_hash == ZERO_HASH
