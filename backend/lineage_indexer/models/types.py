from sqlalchemy import String
from sqlalchemy.types import TypeDecorator

# Decimal digits in 2**256 - 1
UINT256_DIGITS = 78


class Uint256(TypeDecorator):
    """
    Ledger uint256 quantity.

    Stored as a decimal string so values above 2**63 survive every backend
    (SQLite would otherwise coerce NUMERIC to float). Exposed as ``int``.
    """

    impl = String(UINT256_DIGITS)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = int(value)
        if value < 0:
            raise ValueError(f"uint256 cannot be negative: {value}")
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)
