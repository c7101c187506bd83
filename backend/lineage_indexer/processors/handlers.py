"""
handlers.py - Per-operation state transitions.

Each handler applies one OperationEvent to the Asset Projection and the
Lineage Closure Index inside the caller's transaction. Any structural
problem raises StructuralViolation, which rolls back the whole sub-batch.

| Operation  | Projection                                   | Lineage                      |
|------------|----------------------------------------------|------------------------------|
| CREATE     | new ACTIVE asset, origin_owner = owner       | -                            |
| UPDATE     | amount / location / data_hash                | -                            |
| TRANSFER   | owner / location (+ data_hash if non-zero)   | -                            |
| SPLIT      | parent INACTIVE, one child per related id    | parent -> each child          |
| GROUP      | new group asset, contributors INACTIVE       | each contributor -> group    |
| UNGROUP    | group INACTIVE, recorded members ACTIVE      | - (GROUP edges stay)         |
| TRANSFORM  | source INACTIVE, new asset related[0]        | source -> new asset          |
| INACTIVATE | status INACTIVE (+ location if non-empty)    | -                            |
"""

import logging
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session as DBSession

from lineage_indexer import errors
from lineage_indexer.closure.index import LineageClosureIndex
from lineage_indexer.models import Asset, AssetParentRelation, AssetStatus, Operation
from lineage_indexer.schemas.events import OperationEvent

logger = logging.getLogger(__name__)

ZERO_HASH = "0x" + "00" * 32


def block_time(event: OperationEvent) -> datetime:
    """Ledger timestamp as naive UTC."""
    return datetime.fromtimestamp(event.block_timestamp, UTC).replace(tzinfo=None)


class OperationHandlers:
    def __init__(self, closure: LineageClosureIndex | None = None):
        self.closure = closure or LineageClosureIndex()

    # --- helpers ---

    def _get(self, db: DBSession, asset_id: str, operation: Operation) -> Asset:
        asset = db.get(Asset, asset_id)
        if asset is None:
            raise errors.asset_not_found(asset_id, operation.value)
        return asset

    def _get_active(self, db: DBSession, asset_id: str, operation: Operation) -> Asset:
        asset = self._get(db, asset_id, operation)
        if not asset.is_active:
            raise errors.asset_inactive(asset_id, operation.value)
        return asset

    def _insert(
        self,
        db: DBSession,
        event: OperationEvent,
        asset_id: str,
        amount: int,
        origin_owner: str | None,
        parent_asset_id: str | None = None,
    ) -> Asset:
        if db.get(Asset, asset_id) is not None:
            raise errors.asset_already_exists(asset_id, event.operation.value)

        when = block_time(event)
        asset = Asset(
            asset_id=asset_id,
            channel=event.channel,
            owner=event.owner,
            origin_owner=origin_owner,
            amount=amount,
            location=event.location,
            status=AssetStatus.ACTIVE.value,
            data_hash=event.data_hash,
            parent_asset_id=parent_asset_id,
            created_at=when,
            last_updated=when,
            last_event_id=event.id,
        )
        db.add(asset)
        db.flush()
        return asset

    def _touch(self, asset: Asset, event: OperationEvent) -> None:
        asset.last_updated = block_time(event)
        asset.last_event_id = event.id

    def _inactivate(self, asset: Asset, event: OperationEvent) -> None:
        asset.status = AssetStatus.INACTIVE.value
        self._touch(asset, event)

    # --- operations ---

    def create(self, db: DBSession, event: OperationEvent) -> None:
        self._insert(db, event, event.asset_id, event.amount, origin_owner=event.owner)

    def update(self, db: DBSession, event: OperationEvent) -> None:
        asset = self._get(db, event.asset_id, event.operation)
        asset.amount = event.amount
        asset.location = event.location
        asset.data_hash = event.data_hash
        self._touch(asset, event)

    def transfer(self, db: DBSession, event: OperationEvent) -> None:
        asset = self._get(db, event.asset_id, event.operation)
        asset.owner = event.owner
        asset.location = event.location
        if event.data_hash and event.data_hash != ZERO_HASH:
            asset.data_hash = event.data_hash
        self._touch(asset, event)

    def split(self, db: DBSession, event: OperationEvent) -> None:
        parent = self._get_active(db, event.asset_id, event.operation)
        child_ids = event.related_asset_ids
        if not child_ids:
            raise errors.missing_related_assets(event.asset_id, event.operation.value)
        if len(event.related_amounts) != len(child_ids):
            raise errors.related_amounts_mismatch(
                event.asset_id, event.operation.value, len(child_ids), len(event.related_amounts)
            )

        self._inactivate(parent, event)
        for child_id, amount in zip(child_ids, event.related_amounts):
            self._insert(
                db, event, child_id, amount,
                origin_owner=event.owner,
                parent_asset_id=parent.asset_id,
            )
            self.closure.link(db, parent.asset_id, child_id)

    def group(self, db: DBSession, event: OperationEvent) -> None:
        contributor_ids = event.related_asset_ids
        if not contributor_ids:
            raise errors.missing_related_assets(event.asset_id, event.operation.value)
        amounts = event.related_amounts
        if amounts and len(amounts) != len(contributor_ids):
            raise errors.related_amounts_mismatch(
                event.asset_id, event.operation.value, len(contributor_ids), len(amounts)
            )

        contributors = [
            self._get_active(db, contributor_id, event.operation)
            for contributor_id in contributor_ids
        ]
        group = self._insert(db, event, event.asset_id, event.amount, origin_owner=event.owner)

        for position, contributor in enumerate(contributors):
            self._inactivate(contributor, event)
            db.add(
                AssetParentRelation(
                    parent_asset_id=contributor.asset_id,
                    child_asset_id=group.asset_id,
                    source_event_id=event.id,
                    contributed_amount=amounts[position] if amounts else None,
                )
            )
            self.closure.link(db, contributor.asset_id, group.asset_id)
        db.flush()

    def ungroup(self, db: DBSession, event: OperationEvent) -> None:
        group = self._get_active(db, event.asset_id, event.operation)
        members = [
            self._get(db, member_id, event.operation)
            for member_id in event.related_asset_ids
        ]
        recorded = set(
            db.execute(
                select(AssetParentRelation.parent_asset_id).where(
                    AssetParentRelation.child_asset_id == group.asset_id
                )
            ).scalars()
        )
        for member in members:
            if member.asset_id not in recorded:
                raise errors.not_group_member(member.asset_id, group.asset_id)

        self._inactivate(group, event)
        for member in members:
            member.status = AssetStatus.ACTIVE.value
            member.location = event.location
            self._touch(member, event)

    def transform(self, db: DBSession, event: OperationEvent) -> None:
        if not event.related_asset_ids:
            raise errors.missing_related_assets(event.asset_id, event.operation.value)
        source = self._get_active(db, event.asset_id, event.operation)
        new_id = event.related_asset_ids[0]
        amount = event.related_amounts[0] if event.related_amounts else event.amount

        self._inactivate(source, event)
        self._insert(
            db, event, new_id, amount,
            origin_owner=source.origin_owner,
            parent_asset_id=source.asset_id,
        )
        self.closure.link(db, source.asset_id, new_id)

    def inactivate(self, db: DBSession, event: OperationEvent) -> None:
        asset = self._get(db, event.asset_id, event.operation)
        if not asset.is_active:
            raise errors.asset_already_inactive(asset.asset_id)
        if event.location:
            asset.location = event.location
        self._inactivate(asset, event)
