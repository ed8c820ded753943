from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Starter dataset shipped with the package
BUNDLED_SEED_DATA_PATH = Path(__file__).parent / "data" / "seed_cards.json"


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "Sports Card Tracker"
    debug: bool = False

    database_url: str = "postgresql+asyncpg://localhost:5432/cardkeeper"

    # Name given to the collection created by ensure_default
    default_collection_name: str = "My Collection"

    # Stamped on every snapshot produced by the snapshot builder
    backup_format_version: str = "2.0"

    seed_data_path: Path = BUNDLED_SEED_DATA_PATH


settings = Settings()


# =============================================================================
# DEFAULT COLLECTION APPEARANCE
# =============================================================================

DEFAULT_COLLECTION_DESCRIPTION = "Default collection for all cards"
DEFAULT_COLLECTION_COLOR = "#4F46E5"
DEFAULT_COLLECTION_ICON = "\N{PACKAGE}"
