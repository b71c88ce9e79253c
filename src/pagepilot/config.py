"""Configuration settings for the application."""

from pydantic import (
    BaseModel,
    Field,
    field_validator,
)
from pydantic_settings import (
    BaseSettings,
    SettingsConfigDict,
)


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = False
    DATA_DIR: str = "./data"
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical
    RUN_LOG_ENABLED: bool = True
    KEEP_FINISHED_RUNS: int = Field(default=50, ge=0)  # finished runs the API host remembers

    # LLM Configuration
    PLANNER: str = "openai"  # Options: openai, azure, anthropic
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    AZURE_OPENAI_ENDPOINT: str | None = None
    AZURE_OPENAI_API_KEY: str | None = None
    AZURE_OPENAI_DEPLOYMENT: str | None = None
    AZURE_OPENAI_API_VERSION: str = "2025-03-01-preview"
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-latest"

    # Page bridge
    BRIDGE_URL: str = "http://localhost:8765"
    BRIDGE_TIMEOUT: float = 30.0

    # Agent loop defaults
    MAX_ITERATIONS: int = Field(default=20, ge=1)
    AUTO_APPROVE: bool = True
    ALLOW_EMBEDDED_ORIGINS: bool = False
    SETTLE_DELAY_MS: int = Field(default=500, ge=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("AZURE_OPENAI_ENDPOINT")
    @classmethod
    def _require_https(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if v and not v.startswith("https://"):
            raise ValueError(
                "Endpoint must use HTTPS (e.g., https://your-resource.openai.azure.com)"
            )
        return v or None

    def planner_configured(self) -> bool:
        """Return True when the selected planner backend has its credentials."""
        planner = self.PLANNER.lower()
        if planner == "azure":
            return bool(
                self.AZURE_OPENAI_ENDPOINT
                and self.AZURE_OPENAI_API_KEY
                and self.AZURE_OPENAI_DEPLOYMENT
            )
        if planner == "anthropic":
            return bool(self.ANTHROPIC_API_KEY)
        return bool(self.OPENAI_API_KEY)


class AgentConfig(BaseModel):
    """
    Per-run options handed to the agent loop at construction.

    A bare text reply from the model is an intermediate message by default and the loop asks it
    to continue. Hosts that treat such a reply as the final answer (ending the run with
    ``completed`` and the text as reason) set ``text_ends_run=True``.
    """

    max_iterations: int = Field(default=20, ge=1, description="Safety limit on turns")
    auto_approve: bool = Field(default=True, description="Skip the approval gate")
    allow_embedded_origins: bool = Field(
        default=False, description="Discover and execute tools inside sub-frames"
    )
    settle_delay_ms: int = Field(default=500, ge=0, description="Pause after each tool call")
    single_turn: bool = Field(default=False, description="Stop after the first batch of calls")
    text_ends_run: bool = Field(
        default=False, description="Treat a bare text reply as the final answer"
    )

    @classmethod
    def from_settings(cls, source: Settings | None = None, **overrides: object) -> "AgentConfig":
        """Build a config from *source* (default: the global settings) plus *overrides*."""
        source = source or settings
        values: dict[str, object] = {
            "max_iterations": source.MAX_ITERATIONS,
            "auto_approve": source.AUTO_APPROVE,
            "allow_embedded_origins": source.ALLOW_EMBEDDED_ORIGINS,
            "settle_delay_ms": source.SETTLE_DELAY_MS,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)


settings = Settings()
