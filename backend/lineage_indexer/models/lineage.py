from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text, UniqueConstraint

from lineage_indexer.database import Base
from lineage_indexer.models.types import Uint256


class LineageEdge(Base):
    """
    Closure-table row: ``ancestor_id`` reaches ``descendant_id`` in ``depth`` hops.

    The table holds the full transitive closure, so ancestor and descendant
    sets are single indexed lookups.
    """

    __tablename__ = "lineage_edges"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ancestor_id = Column(String(66), nullable=False)
    descendant_id = Column(String(66), nullable=False)
    depth = Column(Integer, nullable=False)
    path = Column(Text, nullable=False)  # "/"-joined ids, ancestor first

    __table_args__ = (
        UniqueConstraint("ancestor_id", "descendant_id", name="uq_lineage_edge"),
        Index("ix_lineage_edges_ancestor_depth", "ancestor_id", "depth"),
        Index("ix_lineage_edges_descendant_depth", "descendant_id", "depth"),
    )


class AssetParentRelation(Base):
    """Contributor -> group link written by GROUP."""

    __tablename__ = "asset_parent_relations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    parent_asset_id = Column(String(66), nullable=False, index=True)
    child_asset_id = Column(String(66), nullable=False, index=True)
    source_event_id = Column(Integer, ForeignKey("operation_events.id"), nullable=False)
    contributed_amount = Column(Uint256, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "parent_asset_id",
            "child_asset_id",
            "source_event_id",
            name="uq_asset_parent_relation",
        ),
    )
