import tomllib
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from polaris.logger import LOG_FORMAT


def get_project_root() -> Path:
    """Get the project root directory"""
    return Path(__file__).resolve().parent.parent


PROJECT_ROOT = get_project_root()
CONFIG_DIR = PROJECT_ROOT / "config"


class EnvSettings(BaseSettings):
    """Values that may come from the environment or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    polaris_config_path: Optional[str] = None
    polaris_log_level: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    ollama_base_url: Optional[str] = None
    ollama_model: Optional[str] = None


class ProviderSettings(BaseModel):
    base_url: str = Field(..., description="API base URL")
    model: str = Field(..., description="Preferred model name")
    api_key: Optional[str] = Field(None, description="API key for remote providers")
    timeout: float = Field(60.0, description="HTTP timeout in seconds for generate/stream calls")


class ModelDefaults(BaseModel):
    temperature: float = Field(0.7, description="Sampling temperature")
    max_tokens: int = Field(1000, description="Maximum number of tokens per request")
    top_p: float = Field(0.9)
    frequency_penalty: float = Field(0.0)
    presence_penalty: float = Field(0.0)
    system_prompt: Optional[str] = None


class LoggingSettings(BaseModel):
    level: str = Field("INFO")
    format: str = Field(LOG_FORMAT)
    file_path: Optional[str] = None


class ApiSettings(BaseModel):
    host: str = Field("0.0.0.0")
    port: int = Field(8000)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


def _default_providers() -> Dict[str, ProviderSettings]:
    return {
        "ollama": ProviderSettings(base_url="http://localhost:11434", model="llama3.2"),
        "openai": ProviderSettings(base_url="https://api.openai.com/v1", model="gpt-4"),
    }


class AppConfig(BaseModel):
    providers: Dict[str, ProviderSettings] = Field(default_factory=_default_providers)
    default_provider: Optional[str] = None
    default_agent: str = "general-assistant"
    model_defaults: ModelDefaults = Field(default_factory=ModelDefaults)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)


def _find_config_file() -> tuple[Optional[Path], Optional[str]]:
    # Priority: YAML, then TOML
    for name, kind in (
        ("config.yaml", "yaml"),
        ("config.example.yaml", "yaml"),
        ("config.toml", "toml"),
        ("config.example.toml", "toml"),
    ):
        candidate = CONFIG_DIR / name
        if candidate.exists():
            return candidate, kind
    return None, None


def _read_config_file(path: Path, kind: str) -> Dict[str, Any]:
    if kind == "yaml":
        with path.open("r") as f:
            try:
                return yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"Error parsing YAML configuration file {path}: {e}")
    with path.open("rb") as f:
        try:
            return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Error parsing TOML configuration file {path}: {e}")


def load_config(path: Optional[str] = None, env: Optional[EnvSettings] = None) -> AppConfig:
    """
    Load the application configuration.

    Args:
        path: Explicit config file. When omitted, POLARIS_CONFIG_PATH is used,
              then the first of config.yaml, config.example.yaml, config.toml,
              config.example.toml in the config directory.
        env: Environment overrides; read from the process environment if omitted.

    Returns:
        AppConfig, populated with defaults for anything the file leaves out.
    """
    env = env or EnvSettings()

    config_path: Optional[Path] = None
    kind: Optional[str] = None
    explicit = path or env.polaris_config_path
    if explicit:
        config_path = Path(explicit)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file {config_path} not found")
        kind = "toml" if config_path.suffix == ".toml" else "yaml"
    else:
        config_path, kind = _find_config_file()

    raw = _read_config_file(config_path, kind) if config_path else {}

    defaults = _default_providers()
    providers: Dict[str, ProviderSettings] = {}
    for provider_id, data in {**{k: {} for k in defaults}, **raw.get("providers", {})}.items():
        base = defaults.get(provider_id)
        merged = {**(base.model_dump() if base else {}), **(data or {})}
        providers[provider_id] = ProviderSettings(**merged)

    if env.ollama_base_url and "ollama" in providers:
        providers["ollama"].base_url = env.ollama_base_url
    if env.ollama_model and "ollama" in providers:
        providers["ollama"].model = env.ollama_model
    if env.openai_api_key and "openai" in providers:
        providers["openai"].api_key = env.openai_api_key
    if env.openai_base_url and "openai" in providers:
        providers["openai"].base_url = env.openai_base_url

    app_config = AppConfig(
        providers=providers,
        default_provider=raw.get("default_provider"),
        default_agent=raw.get("default_agent", "general-assistant"),
        model_defaults=ModelDefaults(**raw.get("model_defaults", {})),
        logging=LoggingSettings(**raw.get("logging", {})),
        api=ApiSettings(**raw.get("api", {})),
    )
    if env.polaris_log_level:
        app_config.logging.level = env.polaris_log_level
    return app_config
