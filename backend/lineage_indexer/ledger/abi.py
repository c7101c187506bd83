"""
abi.py - AssetRegistry event ABI.

Only AssetOperationExecuted is indexed. Indexed arguments arrive as topics
(channelName, assetId, owner); the rest is ABI-encoded in `data`.
"""

from web3 import Web3

from lineage_indexer.models.enums import Operation

ASSET_OPERATION_EXECUTED = (
    "AssetOperationExecuted("
    "bytes32,bytes32,uint8,uint8,uint256,bytes32[],uint256[],address,string,uint256,bytes32)"
)

# Non-indexed arguments, in declaration order
ASSET_OPERATION_DATA_TYPES = [
    "uint8",      # operation
    "uint8",      # status
    "uint256",    # timestamp
    "bytes32[]",  # relatedAssetIds
    "uint256[]",  # relatedAmounts
    "string",     # idLocal
    "uint256",    # amount
    "bytes32",    # dataHash
]

ASSET_OPERATION_TOPIC = Web3.to_hex(Web3.keccak(text=ASSET_OPERATION_EXECUTED))

# topics[0] -> event name
EVENT_SIGNATURES = {
    ASSET_OPERATION_TOPIC: "AssetOperationExecuted",
}

# On-chain operation codes. 3 (TRANSFERIN) and 9+ (document / data sheet
# kinds) carry no projection semantics and are skipped.
OPERATION_CODES = {
    0: Operation.CREATE,
    1: Operation.UPDATE,
    2: Operation.TRANSFER,
    4: Operation.SPLIT,
    5: Operation.GROUP,
    6: Operation.UNGROUP,
    7: Operation.TRANSFORM,
    8: Operation.INACTIVATE,
}

STATUS_ACTIVE = 0
STATUS_INACTIVE = 1
