from .enums import Operation, AssetStatus, HistoryMode, RelationshipType
from .operation_event import OperationEventRow, EventRelatedAsset
from .asset import Asset
from .lineage import LineageEdge, AssetParentRelation
from .cursor import BlockCursor

__all__ = [
    "Operation",
    "AssetStatus",
    "HistoryMode",
    "RelationshipType",
    "OperationEventRow",
    "EventRelatedAsset",
    "Asset",
    "LineageEdge",
    "AssetParentRelation",
    "BlockCursor",
]
