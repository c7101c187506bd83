from enum import Enum


class Operation(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    TRANSFER = "TRANSFER"
    SPLIT = "SPLIT"
    GROUP = "GROUP"
    UNGROUP = "UNGROUP"
    TRANSFORM = "TRANSFORM"
    INACTIVATE = "INACTIVATE"


class AssetStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class HistoryMode(str, Enum):
    DIRECT = "DIRECT"      # Asset + ancestors
    INDIRECT = "INDIRECT"  # Asset + ancestors + descendants + siblings


class RelationshipType(str, Enum):
    """How a history event's asset relates to the queried asset."""

    SELF = "SELF"
    ANCESTOR = "ANCESTOR"
    DESCENDANT = "DESCENDANT"
    SIBLING = "SIBLING"
