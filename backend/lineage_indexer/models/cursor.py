from sqlalchemy import BigInteger, Column, DateTime, String

from lineage_indexer.database import Base


class BlockCursor(Base):
    """Highest block height whose events are fully processed, per named cursor."""

    __tablename__ = "block_cursors"

    id = Column(String(64), primary_key=True)
    last_height = Column(BigInteger, nullable=False)
    updated_at = Column(DateTime, nullable=False)
