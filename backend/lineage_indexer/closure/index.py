"""
index.py - Lineage Closure Index.

lineage_edges holds the full transitive closure of the parent -> child
relation: for every path A -> ... -> C there is exactly one (A, C) row whose
depth is the hop count of the first path that produced it.

Writes go through link(); everything else is a pure read.
"""

import logging

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session as DBSession, aliased

from lineage_indexer.database import insert_if_absent
from lineage_indexer.models import LineageEdge

logger = logging.getLogger(__name__)


class LineageClosureIndex:
    def link(self, db: DBSession, parent_id: str, child_id: str) -> int:
        """
        Add the depth-1 edge parent -> child and every closure edge it implies.

        Each (upstream, downstream) pair with upstream in {parent} + ancestors(parent)
        and downstream in {child} + descendants(child) gets
        depth = depth(upstream, parent) + 1 + depth(child, downstream).
        Existing pairs are left untouched.

        Returns:
            Number of edges inserted.
        """
        if parent_id == child_id:
            raise ValueError(f"Refusing self-edge on {parent_id}")

        upstream = [(parent_id, 0, parent_id)] + [
            (edge.ancestor_id, edge.depth, edge.path)
            for edge in db.execute(
                select(LineageEdge).where(LineageEdge.descendant_id == parent_id)
            ).scalars()
        ]
        downstream = [(child_id, 0, child_id)] + [
            (edge.descendant_id, edge.depth, edge.path)
            for edge in db.execute(
                select(LineageEdge).where(LineageEdge.ancestor_id == child_id)
            ).scalars()
        ]

        inserted = 0
        for ancestor_id, up_depth, up_path in upstream:
            for descendant_id, down_depth, down_path in downstream:
                if ancestor_id == descendant_id:
                    logger.warning(
                        "Cycle detected linking %s -> %s through %s",
                        parent_id, child_id, ancestor_id,
                    )
                    continue
                if insert_if_absent(
                    db,
                    LineageEdge,
                    {
                        "ancestor_id": ancestor_id,
                        "descendant_id": descendant_id,
                        "depth": up_depth + 1 + down_depth,
                        "path": f"{up_path}/{down_path}",
                    },
                    conflict_columns=["ancestor_id", "descendant_id"],
                ):
                    inserted += 1

        logger.debug("Linked %s -> %s (%d closure edges)", parent_id, child_id, inserted)
        return inserted

    def ancestor_depths(
        self, db: DBSession, asset_id: str, max_depth: int | None = None
    ) -> dict[str, int]:
        stmt = select(LineageEdge.ancestor_id, LineageEdge.depth).where(
            LineageEdge.descendant_id == asset_id
        )
        if max_depth is not None:
            stmt = stmt.where(LineageEdge.depth <= max_depth)
        return {ancestor_id: depth for ancestor_id, depth in db.execute(stmt)}

    def descendant_depths(
        self, db: DBSession, asset_id: str, max_depth: int | None = None
    ) -> dict[str, int]:
        stmt = select(LineageEdge.descendant_id, LineageEdge.depth).where(
            LineageEdge.ancestor_id == asset_id
        )
        if max_depth is not None:
            stmt = stmt.where(LineageEdge.depth <= max_depth)
        return {descendant_id: depth for descendant_id, depth in db.execute(stmt)}

    def sibling_depths(self, db: DBSession, asset_id: str) -> dict[str, int]:
        """
        Assets that share an ancestor with asset_id at the same depth, mapped
        to the depth of the closest such shared ancestor.

        Excludes asset_id itself and its own ancestor chain.
        """
        mine = aliased(LineageEdge)
        other = aliased(LineageEdge)
        stmt = (
            select(other.descendant_id, func.min(mine.depth))
            .join(
                mine,
                and_(
                    mine.ancestor_id == other.ancestor_id,
                    mine.depth == other.depth,
                ),
            )
            .where(
                mine.descendant_id == asset_id,
                other.descendant_id != asset_id,
            )
            .group_by(other.descendant_id)
        )
        ancestors = self.ancestors_of(db, asset_id)
        return {
            sibling_id: depth
            for sibling_id, depth in db.execute(stmt)
            if sibling_id not in ancestors
        }

    def ancestors_of(
        self, db: DBSession, asset_id: str, max_depth: int | None = None
    ) -> set[str]:
        return set(self.ancestor_depths(db, asset_id, max_depth))

    def descendants_of(
        self, db: DBSession, asset_id: str, max_depth: int | None = None
    ) -> set[str]:
        return set(self.descendant_depths(db, asset_id, max_depth))

    def siblings_of(self, db: DBSession, asset_id: str) -> set[str]:
        return set(self.sibling_depths(db, asset_id))

    def parents_of(self, db: DBSession, asset_id: str) -> set[str]:
        return self.ancestors_of(db, asset_id, max_depth=1)

    def children_of(self, db: DBSession, asset_id: str) -> set[str]:
        return self.descendants_of(db, asset_id, max_depth=1)
