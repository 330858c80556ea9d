"""Application settings using Pydantic Settings."""

from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv


def find_and_load_env_file():
    """Find and load .env file in current directory or parent directories."""
    search_paths = [
        Path.cwd(),
        Path(__file__).parent.parent.parent.parent,  # Project root
    ]

    for start_path in search_paths:
        current = start_path.resolve()
        # Check current directory and up to 3 levels up
        for _ in range(4):
            env_path = current / ".env"
            if env_path.exists():
                load_dotenv(env_path, override=False)
                return str(env_path)
            parent = current.parent
            if parent == current:  # Reached root
                break
            current = parent
    return None


# Load .env file before Settings class is defined
find_and_load_env_file()


class Settings(BaseSettings):
    """Application configuration settings."""

    # Target environment
    dataverse_url: Optional[str] = None
    api_version: str = "v9.2"

    # Client credentials (service principal)
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    authority_host: str = "https://login.microsoftonline.com"

    # Naming
    publisher_prefix: str = "mmd"
    publisher_name: str = "Mermaid Publisher"
    solution_name: str = "Mermaid Solution"
    language_code: int = 1033

    # Remote call behaviour (seconds)
    request_timeout: float = 120.0
    max_attempts: int = 5
    retry_base_delay: float = 1.0
    retry_max_delay: float = 16.0
    token_refresh_margin: float = 60.0
    deploy_concurrency: int = 1

    # Generation policy
    synthesize_primary_keys: bool = True
    junction_max_descriptive_fields: int = 2
    detect_standard_tables: bool = True

    # Logging Configuration
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    model_config = SettingsConfigDict(
        env_file=None,  # We load it manually with dotenv
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def __init__(self, **kwargs):
        """Initialize settings and create the log directory if needed."""
        find_and_load_env_file()
        super().__init__(**kwargs)
        if self.dataverse_url:
            self.dataverse_url = self.dataverse_url.rstrip("/")
        if self.log_file:
            self.log_file = Path(self.log_file)
            self.log_file.parent.mkdir(parents=True, exist_ok=True)

    @property
    def api_base_url(self) -> Optional[str]:
        """Web API root, e.g. https://org.crm.dynamics.com/api/data/v9.2."""
        if not self.dataverse_url:
            return None
        return f"{self.dataverse_url}/api/data/{self.api_version}"


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
