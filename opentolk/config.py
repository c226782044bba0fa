from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    plugins_enabled: bool = True
    plugins_dir: Path = Path("~/.opentolk/plugins")
    data_dir: Path = Path("~/.opentolk/data")

    @model_validator(mode="after")
    def expand_paths(self) -> "Settings":
        self.plugins_dir = self.plugins_dir.expanduser()
        self.data_dir = self.data_dir.expanduser()
        return self

    llm_provider: str = "openai"  # "openai" or "anthropic"

    openai_api_key: str = ""
    openai_model: str = "gpt-4o"

    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    anthropic_max_tokens: int = 4096

    default_timeout_seconds: int = 30
    tool_timeout_seconds: int = 30
    max_tool_rounds: int = 10

    conversation_ttl_seconds: int = 600
    conversation_max_messages: int = 50

    shortcuts_binary: str = "shortcuts"
    web_search_url: str = "https://api.duckduckgo.com/"

    auto_approve_permissions: bool = False

    # Authorized-user token JSON for the gmail_* tools; empty disables them
    google_token_file: str = ""
    google_client_id: str = ""
    google_client_secret: str = ""

    sentry_dsn: str = ""

    environment: str = "development"
    allowed_origins: str = ""


settings = Settings()
