from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="DECKVAULT_")

    app_name: str = "DeckVault"
    debug: bool = False

    database_url: str = "postgresql+asyncpg://localhost:5432/deckvault"

    scryfall_api_url: str = "https://api.scryfall.com"
    scryfall_timeout: float = 30.0

    # Individual searches allowed per import for cards the batch lookup missed
    catalog_fallback_limit: int = 25

    # Total bytes all checkpoint records may occupy in durable storage
    checkpoint_quota_bytes: int = 5_000_000


settings = Settings()


# =============================================================================
# CATALOG LIMITS
# =============================================================================

# Scryfall /cards/collection accepts at most 75 identifiers per request
CATALOG_BATCH_SIZE = 75

# Retries for a batch that hit the rate limit (HTTP 429)
CATALOG_MAX_RETRIES = 3


# =============================================================================
# BULK OPERATION TUNING
# =============================================================================

# Allocation plan entries committed per transaction during the allocating stage
ALLOCATION_CHUNK_SIZE = 50

# bulk_allocate reports progress every N items
PROGRESS_EVERY = 25
