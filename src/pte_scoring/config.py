"""Application configuration using pydantic-settings."""

import functools
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

DEFAULT_TIMEOUT_MS = 8000


def _find_project_root() -> Path:
    """Find project root by locating pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path(__file__).resolve().parent.parent.parent


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from settings.yaml."""

    def get_field_value(self, field_name: str) -> tuple[Any, str, bool]:
        """Not used - we implement __call__ instead."""
        return None, "", False

    def __call__(self) -> dict[str, Any]:
        """Load settings from YAML file."""
        yaml_path = _find_project_root() / "config" / "settings.yaml"
        if not yaml_path.exists():
            return {}

        with open(yaml_path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        # Flatten nested structure to match Settings field names
        flattened = {}
        if 'server' in data:
            flattened['host'] = data['server'].get('host')
            flattened['port'] = data['server'].get('port')
        if 'scoring' in data:
            scoring = data['scoring']
            priority = scoring.get('provider_priority')
            if isinstance(priority, list):
                priority = ",".join(priority)
            flattened['pte_scoring_provider_priority'] = priority
            flattened['pte_scoring_timeout_ms'] = scoring.get('timeout_ms')
        if 'openai' in data:
            flattened['openai_model'] = data['openai'].get('model')
        if 'gemini' in data:
            flattened['gemini_model'] = data['gemini'].get('model')
        if 'gateway' in data:
            flattened['gateway_base_url'] = data['gateway'].get('base_url')
            flattened['gateway_model'] = data['gateway'].get('model')

        # Remove None values
        return {k: v for k, v in flattened.items() if v is not None}


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Providers (a missing key disables that provider)
    openai_api_key: str | None = Field(default=None)
    openai_model: str = Field(default="gpt-4o-mini")
    gemini_api_key: str | None = Field(default=None)
    gemini_model: str = Field(default="gemini-2.5-flash")
    gateway_api_key: str | None = Field(default=None)
    gateway_base_url: str = Field(default="https://ai-gateway.vercel.sh/v1")
    gateway_model: str = Field(default="openai/gpt-4o-mini")

    # Scoring
    pte_scoring_provider_priority: str = Field(
        default="", description="Comma-separated provider ids, e.g. 'openai,gemini'"
    )
    pte_scoring_timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Paths
    project_root: Path = Field(default_factory=_find_project_root)

    @property
    def provider_priority(self) -> list[str]:
        """Parsed provider priority list (empty when unset)."""
        return [
            p.strip().lower()
            for p in self.pte_scoring_provider_priority.split(",")
            if p.strip()
        ]

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings sources to include YAML file.

        Priority order (highest to lowest):
        1. init_settings (arguments passed to Settings())
        2. env_settings (environment variables)
        3. dotenv_settings (.env file)
        4. YamlSettingsSource (settings.yaml)
        5. file_secret_settings
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSettingsSource(settings_cls),
            file_secret_settings,
        )


class OrchestratorConfig(BaseModel):
    """Explicit orchestrator configuration, built once at the application boundary.

    Args:
        provider_priority: Default provider order; empty means use the
            section-specific order.
        timeout_ms: Default per-provider timeout.
    """

    provider_priority: list[str] = Field(default_factory=list)
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS)

    @classmethod
    def from_settings(cls, settings: Settings) -> "OrchestratorConfig":
        timeout = settings.pte_scoring_timeout_ms
        return cls(
            provider_priority=settings.provider_priority,
            timeout_ms=timeout if timeout > 0 else DEFAULT_TIMEOUT_MS,
        )


@functools.lru_cache
def get_settings() -> Settings:
    """Get application settings singleton."""
    return Settings()
