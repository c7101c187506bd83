from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    POSTGRES_USER: str = "lineage"
    POSTGRES_PASSWORD: str = "password"
    POSTGRES_DB: str = "lineage_indexer"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # Overrides the POSTGRES_* composition

    # Logging
    LOG_LEVEL: str = "INFO"

    # Ledger
    RPC_URL: str = "http://localhost:8545"
    RPC_TIMEOUT_SECONDS: int = 30
    ASSET_REGISTRY_ADDRESS: str = ""

    # Indexer
    GENESIS_BLOCK: int = 0
    CONFIRMATION_BLOCKS: int = 0
    BLOCK_BATCH_SIZE: int = 100
    POLLING_INTERVAL_SECONDS: float = 5.0
    PROCESSING_TIMEOUT_SECONDS: int = 60
    CURSOR_ID: str = "main_indexer"

    class Config:
        env_file = ".env"
        extra = "allow"  # Allow extra environment variables

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


settings = Settings()
