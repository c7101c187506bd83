"""
history.py - Read-side schemas for the Genealogy Query Engine.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from lineage_indexer.models.enums import HistoryMode, Operation, RelationshipType
from lineage_indexer.schemas.events import OperationEvent

DEFAULT_LIMIT = 100
MAX_RESULTS = 1000
MAX_DEPTH = 10


class HistoryFilters(BaseModel):
    from_time: datetime | None = Field(None, description="Inclusive lower bound on block time")
    to_time: datetime | None = Field(None, description="Inclusive upper bound on block time")
    operations: list[Operation] | None = Field(None, description="Allow-list of operation kinds")
    max_depth: int | None = Field(None, ge=1, le=MAX_DEPTH, description="Bounds ancestor/descendant expansion")
    limit: int = Field(DEFAULT_LIMIT, ge=1, le=MAX_RESULTS)
    offset: int = Field(0, ge=0)

    @model_validator(mode="after")
    def time_range_must_be_ordered(self) -> "HistoryFilters":
        if self.from_time and self.to_time and self.from_time > self.to_time:
            raise ValueError("from_time must not be after to_time")
        return self


class TimeRange(BaseModel):
    first_event: datetime | None = None
    last_event: datetime | None = None


class HistoryStatistics(BaseModel):
    events_by_operation: dict[str, int] = Field(default_factory=dict)
    time_range: TimeRange = Field(default_factory=TimeRange)
    unique_owners: int = 0
    total_assets_in_tree: int = 0


class HistoryEvent(OperationEvent):
    """An event in a history result, tagged with its place in the tree."""

    relationship_type: RelationshipType = Field(
        ..., description="Closest relation between a touched asset and the queried one"
    )
    depth_level: int = Field(
        ..., ge=0, description="Closure depth of that relation, 0 for the asset itself"
    )


class HistoryResult(BaseModel):
    asset_id: str
    mode: HistoryMode
    events: list[HistoryEvent]
    total_events: int = Field(..., description="Matches before pagination")
    statistics: HistoryStatistics
    execution_time_ms: float
    filters: HistoryFilters


class AssetView(BaseModel):
    asset_id: str
    channel: str | None = None
    owner: str | None = None
    origin_owner: str | None = None
    amount: int
    location: str | None = None
    status: str
    data_hash: str | None = None
    parent_asset_id: str | None = None
    created_at: datetime
    last_updated: datetime

    model_config = ConfigDict(from_attributes=True)


class Transformation(BaseModel):
    from_asset_id: str
    to_asset_id: str
    event_id: int
    block_timestamp: int


class Genealogy(BaseModel):
    """Structural neighbourhood of one asset."""

    asset: AssetView
    parents: list[str] = Field(default_factory=list)
    children: list[str] = Field(default_factory=list)
    ancestors: list[str] = Field(default_factory=list)
    descendants: list[str] = Field(default_factory=list)
    siblings: list[str] = Field(default_factory=list)
    components: list[str] = Field(default_factory=list, description="Assets grouped into this one")
    groups: list[str] = Field(default_factory=list, description="Groups this asset was absorbed into")
    transformations: list[Transformation] = Field(default_factory=list)
