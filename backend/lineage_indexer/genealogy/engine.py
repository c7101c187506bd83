"""
engine.py - Genealogy Query Engine.

Read-only. Never touches ingestion state.

HISTORY MODES:
- DIRECT:   processed events touching the asset or any of its ancestors
- INDIRECT: DIRECT plus events touching its descendants and siblings

"Touching" means the event's own asset_id, or any of its related asset ids,
is in the set. Results are ordered by (block_timestamp, block_height,
log_position) ascending. Each returned event is tagged with the closest
relation (SELF, ANCESTOR, DESCENDANT, SIBLING) among the assets it touches,
plus that relation's closure depth.
"""

import logging
import math
import re
import time
from collections import Counter
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from lineage_indexer.closure.index import LineageClosureIndex
from lineage_indexer.errors import InternalQueryError, InvalidInputError, NotFoundError
from lineage_indexer.ingestion.event_log import RawEventLog
from lineage_indexer.models import (
    Asset,
    AssetParentRelation,
    HistoryMode,
    Operation,
    OperationEventRow,
    RelationshipType,
)
from lineage_indexer.schemas.events import OperationEvent
from lineage_indexer.schemas.history import (
    AssetView,
    Genealogy,
    HistoryEvent,
    HistoryFilters,
    HistoryResult,
    HistoryStatistics,
    TimeRange,
    Transformation,
)

logger = logging.getLogger(__name__)

ASSET_ID_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")


def normalize_asset_id(asset_id: Any) -> str:
    if not isinstance(asset_id, str) or not ASSET_ID_PATTERN.match(asset_id):
        raise InvalidInputError(
            "asset_id must be 0x followed by 64 hex digits",
            {"asset_id": str(asset_id)},
        )
    return asset_id.lower()


def _unix(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.timestamp()


def _from_unix(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, UTC).replace(tzinfo=None)


def coerce_filters(filters: HistoryFilters | Mapping[str, Any] | None) -> HistoryFilters:
    if filters is None:
        return HistoryFilters()
    if isinstance(filters, HistoryFilters):
        return filters
    try:
        return HistoryFilters.model_validate(dict(filters))
    except ValidationError as e:
        raise InvalidInputError(
            "Invalid history filters",
            {"errors": [error["msg"] for error in e.errors()]},
        ) from e


def compute_statistics(events: Iterable[OperationEvent]) -> HistoryStatistics:
    """Per-operation counts, owners, time range and asset coverage of `events`."""
    events = list(events)
    if not events:
        return HistoryStatistics()

    by_operation = Counter(event.operation.value for event in events)
    owners = {event.owner for event in events if event.owner}
    assets: set[str] = set()
    for event in events:
        assets.add(event.asset_id)
        assets.update(event.related_asset_ids)

    timestamps = [event.block_timestamp for event in events]
    return HistoryStatistics(
        events_by_operation=dict(by_operation),
        time_range=TimeRange(
            first_event=_from_unix(min(timestamps)),
            last_event=_from_unix(max(timestamps)),
        ),
        unique_owners=len(owners),
        total_assets_in_tree=len(assets),
    )


_PRECEDENCE = {
    RelationshipType.SELF: 0,
    RelationshipType.ANCESTOR: 1,
    RelationshipType.DESCENDANT: 2,
    RelationshipType.SIBLING: 3,
}


def tag_event(
    event: OperationEvent, scope: Mapping[str, tuple[RelationshipType, int]]
) -> HistoryEvent:
    """Tag `event` with the closest relation among the scoped assets it touches."""
    touched = [
        scope[touched_id]
        for touched_id in (event.asset_id, *event.related_asset_ids)
        if touched_id in scope
    ]
    relationship, depth = min(
        touched, key=lambda entry: (_PRECEDENCE[entry[0]], entry[1])
    )
    return HistoryEvent(
        **event.model_dump(), relationship_type=relationship, depth_level=depth
    )


class GenealogyQueryEngine:
    def __init__(self, closure: LineageClosureIndex | None = None):
        self.closure = closure or LineageClosureIndex()

    def exists(self, db: DBSession, asset_id: str) -> bool:
        asset_id = normalize_asset_id(asset_id)
        try:
            return db.get(Asset, asset_id) is not None
        except SQLAlchemyError as e:
            raise InternalQueryError("Failed to look up asset", {"asset_id": asset_id}) from e

    def _require_asset(self, db: DBSession, asset_id: str) -> Asset:
        asset = db.get(Asset, asset_id)
        if asset is None:
            raise NotFoundError(f"Asset {asset_id} not found", {"asset_id": asset_id})
        return asset

    def _scope(
        self, db: DBSession, asset_id: str, mode: HistoryMode, max_depth: int | None
    ) -> dict[str, tuple[RelationshipType, int]]:
        """Asset id -> (relation, depth). The first relation found for an id wins."""
        scope = {asset_id: (RelationshipType.SELF, 0)}
        layers = [
            (RelationshipType.ANCESTOR, self.closure.ancestor_depths(db, asset_id, max_depth))
        ]
        if mode is HistoryMode.INDIRECT:
            layers.append(
                (RelationshipType.DESCENDANT, self.closure.descendant_depths(db, asset_id, max_depth))
            )
            layers.append((RelationshipType.SIBLING, self.closure.sibling_depths(db, asset_id)))
        for relationship, depths in layers:
            for related_id, depth in depths.items():
                scope.setdefault(related_id, (relationship, depth))
        return scope

    def history(
        self,
        db: DBSession,
        asset_id: str,
        mode: HistoryMode | str = HistoryMode.DIRECT,
        filters: HistoryFilters | Mapping[str, Any] | None = None,
    ) -> HistoryResult:
        started = time.perf_counter()
        asset_id = normalize_asset_id(asset_id)
        filters = coerce_filters(filters)
        try:
            mode = HistoryMode(mode)
        except ValueError as e:
            raise InvalidInputError(f"Unknown history mode {mode!r}", {"mode": str(mode)}) from e

        try:
            self._require_asset(db, asset_id)
            scope = self._scope(db, asset_id, mode, filters.max_depth)

            conditions = [
                OperationEventRow.processed.is_(True),
                RawEventLog.touching(scope),
            ]
            if filters.from_time is not None:
                conditions.append(
                    OperationEventRow.block_timestamp >= math.ceil(_unix(filters.from_time))
                )
            if filters.to_time is not None:
                conditions.append(
                    OperationEventRow.block_timestamp <= math.floor(_unix(filters.to_time))
                )
            if filters.operations:
                conditions.append(
                    OperationEventRow.operation.in_([op.value for op in filters.operations])
                )

            total = db.execute(
                select(func.count()).select_from(OperationEventRow).where(*conditions)
            ).scalar_one()
            rows = db.execute(
                select(OperationEventRow)
                .where(*conditions)
                .order_by(
                    OperationEventRow.block_timestamp,
                    OperationEventRow.block_height,
                    OperationEventRow.log_position,
                )
                .offset(filters.offset)
                .limit(filters.limit)
            ).scalars().all()
        except SQLAlchemyError as e:
            logger.exception("History query failed for %s", asset_id)
            raise InternalQueryError("History query failed", {"asset_id": asset_id}) from e

        events = [tag_event(OperationEvent.from_row(row), scope) for row in rows]
        elapsed_ms = (time.perf_counter() - started) * 1000

        logger.debug(
            "History %s %s: %d/%d events over %d assets in %.1fms",
            mode.value, asset_id, len(events), total, len(scope), elapsed_ms,
        )
        return HistoryResult(
            asset_id=asset_id,
            mode=mode,
            events=events,
            total_events=total,
            statistics=compute_statistics(events),
            execution_time_ms=elapsed_ms,
            filters=filters,
        )

    def genealogy(self, db: DBSession, asset_id: str) -> Genealogy:
        asset_id = normalize_asset_id(asset_id)
        try:
            asset = self._require_asset(db, asset_id)

            components = db.execute(
                select(AssetParentRelation.parent_asset_id)
                .where(AssetParentRelation.child_asset_id == asset_id)
                .order_by(AssetParentRelation.id)
            ).scalars().all()
            groups = db.execute(
                select(AssetParentRelation.child_asset_id)
                .where(AssetParentRelation.parent_asset_id == asset_id)
                .order_by(AssetParentRelation.id)
            ).scalars().all()

            transform_rows = db.execute(
                select(OperationEventRow)
                .where(
                    OperationEventRow.processed.is_(True),
                    OperationEventRow.operation == Operation.TRANSFORM.value,
                    RawEventLog.touching([asset_id]),
                )
                .order_by(OperationEventRow.block_height, OperationEventRow.log_position)
            ).scalars().all()

            genealogy = Genealogy(
                asset=AssetView.model_validate(asset),
                parents=sorted(self.closure.parents_of(db, asset_id)),
                children=sorted(self.closure.children_of(db, asset_id)),
                ancestors=sorted(self.closure.ancestors_of(db, asset_id)),
                descendants=sorted(self.closure.descendants_of(db, asset_id)),
                siblings=sorted(self.closure.siblings_of(db, asset_id)),
                components=list(dict.fromkeys(components)),
                groups=list(dict.fromkeys(groups)),
            )
        except SQLAlchemyError as e:
            logger.exception("Genealogy query failed for %s", asset_id)
            raise InternalQueryError("Genealogy query failed", {"asset_id": asset_id}) from e

        for row in transform_rows:
            event = OperationEvent.from_row(row)
            if not event.related_asset_ids:
                continue
            genealogy.transformations.append(
                Transformation(
                    from_asset_id=event.asset_id,
                    to_asset_id=event.related_asset_ids[0],
                    event_id=event.id,
                    block_timestamp=event.block_timestamp,
                )
            )
        return genealogy
