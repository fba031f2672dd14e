from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

DATA_DIR = Path(__file__).parent / "data"


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "Armory"
    debug: bool = False

    database_url: str = "sqlite+aiosqlite:///./armory.db"

    # Bundled catalog document ingested at start-up
    catalog_path: Path = DATA_DIR / "weapons.json"

    # Difficulty used when a caller loads a deck without choosing one
    default_difficulty: str = "medium"

    # Number of most recent draws a deck remembers
    recent_draw_limit: int = 3


settings = Settings()
