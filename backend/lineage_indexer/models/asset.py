from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String

from lineage_indexer.database import Base
from lineage_indexer.models.enums import AssetStatus
from lineage_indexer.models.types import Uint256


class Asset(Base):
    """
    Current-state projection of one asset.

    Every column is a fold of the processed events for ``asset_id`` in
    (block_height, log_position) order. Timestamps are ledger block times.
    """

    __tablename__ = "assets"

    asset_id = Column(String(66), primary_key=True)
    channel = Column(String(66), nullable=True, index=True)
    owner = Column(String(42), nullable=True, index=True)
    origin_owner = Column(String(42), nullable=True)
    amount = Column(Uint256, nullable=False)
    location = Column(String, nullable=True)
    status = Column(String(20), nullable=False, default=AssetStatus.ACTIVE.value, index=True)
    data_hash = Column(String(66), nullable=True)
    parent_asset_id = Column(String(66), nullable=True, index=True)

    created_at = Column(DateTime, nullable=False)
    last_updated = Column(DateTime, nullable=False)
    last_event_id = Column(Integer, ForeignKey("operation_events.id"), nullable=True)

    __table_args__ = (
        Index("ix_assets_status_owner", "status", "owner"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == AssetStatus.ACTIVE.value
