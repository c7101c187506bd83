"""
test_scenarios.py - End-to-end lifecycle scenarios through ingest().

1. CREATE -> SPLIT
2. CREATE -> TRANSFORM -> TRANSFORM
3. CREATE x2 -> GROUP -> UNGROUP
"""

from datetime import UTC, datetime

from lineage_indexer.database import SessionLocal
from lineage_indexer.models import AssetParentRelation, HistoryMode, Operation

from tests.factories import (
    asset_id,
    block_timestamp,
    create,
    get_asset,
    get_edge_paths,
    get_edges,
    group,
    owner,
    split,
    transform,
    ungroup,
)

A, B, C, D = asset_id(0xA), asset_id(0xB), asset_id(0xC), asset_id(0xD)
G = asset_id(0x6)


def _utc(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, UTC).replace(tzinfo=None)


class TestCreateThenSplit:
    def test_split_projection_and_lineage(self, ledger, indexer):
        ledger.add(
            create(A, block=1, amount=100, owner_address=owner(1)),
            split(A, [B, C], [60, 40], block=2, owner_address=owner(2), location="plant-2"),
        )

        result = indexer.ingest(0, 2)

        assert result.applied == 2
        assert get_asset(A).status == "INACTIVE"
        for child, amount in ((B, 60), (C, 40)):
            row = get_asset(child)
            assert row.status == "ACTIVE"
            assert row.amount == amount
            assert row.parent_asset_id == A
            assert row.origin_owner == owner(2)
            assert row.owner == owner(2)
            assert row.location == "plant-2"
        assert get_edges() == {(A, B): 1, (A, C): 1}

    def test_split_children_are_siblings(self, ledger, indexer):
        ledger.add(create(A, block=1), split(A, [B, C], [60, 40], block=2))
        indexer.ingest(0, 2)

        genealogy = indexer.genealogy(B)

        assert genealogy.parents == [A]
        assert genealogy.siblings == [C]
        assert indexer.genealogy(A).children == sorted([B, C])


class TestTransformChain:
    def test_closure_is_complete(self, ledger, indexer):
        ledger.add(
            create(A, block=1, owner_address=owner(1)),
            transform(A, B, block=2, amount=90, owner_address=owner(2)),
            transform(B, C, block=3, amount=80, owner_address=owner(3)),
        )

        indexer.ingest(0, 3)

        assert get_edges() == {(A, B): 1, (B, C): 1, (A, C): 2}
        assert get_edge_paths()[(A, C)] == f"{A}/{B}/{C}"
        assert get_asset(A).status == "INACTIVE"
        assert get_asset(B).status == "INACTIVE"

        final = get_asset(C)
        assert final.status == "ACTIVE"
        assert final.amount == 80
        assert final.parent_asset_id == B
        assert final.origin_owner == owner(1)
        assert final.owner == owner(3)

    def test_direct_history_of_final_asset(self, ledger, indexer):
        ledger.add(create(A, block=1), transform(A, B, block=2), transform(B, C, block=3))
        indexer.ingest(0, 3)

        result = indexer.history(C, HistoryMode.DIRECT)

        assert [(e.operation, e.asset_id) for e in result.events] == [
            (Operation.CREATE, A),
            (Operation.TRANSFORM, A),
            (Operation.TRANSFORM, B),
        ]
        assert result.total_events == 3

    def test_transformations_listed_in_genealogy(self, ledger, indexer):
        ledger.add(create(A, block=1), transform(A, B, block=2), transform(B, C, block=3))
        indexer.ingest(0, 3)

        genealogy = indexer.genealogy(B)

        assert [(t.from_asset_id, t.to_asset_id) for t in genealogy.transformations] == [
            (A, B),
            (B, C),
        ]
        assert genealogy.ancestors == [A]
        assert genealogy.descendants == [C]


class TestGroupThenUngroup:
    def test_group_shape(self, ledger, indexer):
        ledger.add(
            create(A, block=1, amount=30),
            create(B, block=1, log_index=1, amount=70),
            group(G, [A, B], [30, 70], block=2, owner_address=owner(5)),
        )

        indexer.ingest(0, 2)

        group_row = get_asset(G)
        assert group_row.status == "ACTIVE"
        assert group_row.amount == 100
        assert group_row.parent_asset_id is None
        assert group_row.origin_owner == owner(5)
        assert get_asset(A).status == "INACTIVE"
        assert get_asset(B).status == "INACTIVE"
        assert get_edges() == {(A, G): 1, (B, G): 1}

        db = SessionLocal()
        try:
            relations = {
                (r.parent_asset_id, r.child_asset_id, r.contributed_amount)
                for r in db.query(AssetParentRelation).all()
            }
        finally:
            db.close()
        assert relations == {(A, G, 30), (B, G, 70)}

    def test_ungroup_reactivates_members_and_keeps_edges(self, ledger, indexer):
        ledger.add(
            create(A, block=1),
            create(B, block=1, log_index=1),
            group(G, [A, B], [50, 50], block=2),
            ungroup(G, [A, B], block=3, location="dock-9"),
        )

        indexer.ingest(0, 3)

        assert get_asset(G).status == "INACTIVE"
        for member in (A, B):
            row = get_asset(member)
            assert row.status == "ACTIVE"
            assert row.location == "dock-9"
        assert get_edges() == {(A, G): 1, (B, G): 1}

        genealogy = indexer.genealogy(G)
        assert genealogy.components == [A, B]
        assert indexer.genealogy(A).groups == [G]

    def test_indirect_history_survives_ungroup(self, ledger, indexer):
        ledger.add(
            create(A, block=1),
            create(B, block=1, log_index=1),
            group(G, [A, B], [50, 50], block=2),
            ungroup(G, [A, B], block=3),
        )
        indexer.ingest(0, 3)

        result = indexer.history(G, HistoryMode.INDIRECT)

        assert [(e.operation, e.asset_id) for e in result.events] == [
            (Operation.CREATE, A),
            (Operation.CREATE, B),
            (Operation.GROUP, G),
            (Operation.UNGROUP, G),
        ]

    def test_group_of_groups_extends_closure(self, ledger, indexer):
        outer = asset_id(0x66)
        ledger.add(
            create(A, block=1),
            create(B, block=1, log_index=1),
            create(C, block=1, log_index=2),
            group(G, [A, B], [1, 1], block=2),
            group(outer, [G, C], [2, 1], block=3),
        )

        indexer.ingest(0, 3)

        edges = get_edges()
        assert edges[(G, outer)] == 1
        assert edges[(C, outer)] == 1
        assert edges[(A, outer)] == 2
        assert edges[(B, outer)] == 2


class TestTimestamps:
    def test_created_and_updated_follow_block_time(self, ledger, indexer):
        ledger.add(create(A, block=1), transform(A, B, block=5))
        indexer.ingest(0, 5)

        source = get_asset(A)
        assert source.created_at == _utc(block_timestamp(1))
        assert source.last_updated == _utc(block_timestamp(5))
        assert get_asset(B).created_at == _utc(block_timestamp(5))
