"""
Configuration Management for Relay

Loads configuration from ~/.relay/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import List

from .errors import ConfigurationError

logger = logging.getLogger("relay.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".relay"
CONFIG_PATH = CONFIG_DIR / "config.json"
EXCLUDE_LIST_PATH = CONFIG_DIR / "exclude_lists.json"

DEFAULT_SEARCH_QUERY = "mention:@me OR to:me"
DEFAULT_WRITE_BACK_AUTHORS = ["asana"]
DEFAULT_GOOGLE_MODELS = [
    "gemini-2.0-flash",
    "gemini-2.0-flash-lite",
    "gemini-1.5-flash",
    "gemini-1.5-pro",
]


@dataclass
class SlackConfig:
    """Slack workspace access"""
    token: str = ""
    search_query: str = DEFAULT_SEARCH_QUERY
    write_back_authors: List[str] = field(default_factory=lambda: list(DEFAULT_WRITE_BACK_AUTHORS))
    page_delay: float = 0.5  # seconds between pages
    timeout: float = 30.0


@dataclass
class AsanaConfig:
    """Asana task tracker access"""
    token: str = ""
    timeout: float = 30.0


@dataclass
class LLMConfig:
    """LLM provider configuration for the suggestion cascade"""
    provider: str = "google"
    google_api_key: str = ""
    google_models: List[str] = field(default_factory=lambda: list(DEFAULT_GOOGLE_MODELS))
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"

    @property
    def models(self) -> List[str]:
        """Ordered model candidates for the configured provider"""
        if self.provider == "anthropic":
            return [self.anthropic_model]
        if self.provider == "openai":
            return [self.openai_model]
        return list(self.google_models)


@dataclass
class ServerConfig:
    """Orchestrator host configuration"""
    port: int = 8080
    sync_window_hours: int = 72


@dataclass
class RelayConfig:
    """Main Relay configuration"""
    slack: SlackConfig = field(default_factory=SlackConfig)
    asana: AsanaConfig = field(default_factory=AsanaConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    exclude_list_path: str = str(EXCLUDE_LIST_PATH)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_slack_config(data: dict) -> SlackConfig:
    """Parse slack section from config dict"""
    slack_data = data.get("slack", {})
    return SlackConfig(
        token=slack_data.get("token", ""),
        search_query=slack_data.get("search_query", DEFAULT_SEARCH_QUERY),
        write_back_authors=list(slack_data.get("write_back_authors", DEFAULT_WRITE_BACK_AUTHORS)),
        page_delay=float(slack_data.get("page_delay", 0.5)),
        timeout=float(slack_data.get("timeout", 30.0)),
    )


def _parse_asana_config(data: dict) -> AsanaConfig:
    """Parse asana section from config dict"""
    asana_data = data.get("asana", {})
    return AsanaConfig(
        token=asana_data.get("token", ""),
        timeout=float(asana_data.get("timeout", 30.0)),
    )


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict.

    ``google_model`` (a single model name) is accepted and becomes a
    one-element cascade when ``google_models`` is absent.
    """
    llm_data = data.get("llm", {})
    models = llm_data.get("google_models")
    if models is None and llm_data.get("google_model"):
        models = [llm_data["google_model"]]
    return LLMConfig(
        provider=llm_data.get("provider", "google"),
        google_api_key=llm_data.get("google_api_key", ""),
        google_models=list(models or DEFAULT_GOOGLE_MODELS),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", "claude-sonnet-4-20250514"),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", "gpt-4o-mini"),
    )


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server section from config dict"""
    server_data = data.get("server", {})
    return ServerConfig(
        port=int(server_data.get("port", 8080)),
        sync_window_hours=int(server_data.get("sync_window_hours", 72)),
    )


def load_config() -> RelayConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.relay/config.json)
    3. Default values
    """
    config = RelayConfig()

    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.slack = _parse_slack_config(data)
            config.asana = _parse_asana_config(data)
            config.llm = _parse_llm_config(data)
            config.server = _parse_server_config(data)
            config.exclude_list_path = data.get("exclude_list_path", str(EXCLUDE_LIST_PATH))
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file: %s", e)

    # Secrets: track env-sourced keys so save_config never writes them
    _env_secret_map = {
        "SLACK_TOKEN": (config.slack, "token", "slack_token"),
        "ASANA_TOKEN": (config.asana, "token", "asana_token"),
        "GOOGLE_API_KEY": (config.llm, "google_api_key", "google_api_key"),
        "GEMINI_API_KEY": (config.llm, "google_api_key", "google_api_key"),
        "ANTHROPIC_API_KEY": (config.llm, "anthropic_api_key", "anthropic_api_key"),
        "OPENAI_API_KEY": (config.llm, "openai_api_key", "openai_api_key"),
    }
    for env_var, (section, attr, key) in _env_secret_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(section, attr, val)
            config._env_sourced_keys.add(key)

    if os.getenv("RELAY_LLM_PROVIDER"):
        config.llm.provider = os.getenv("RELAY_LLM_PROVIDER")
    if os.getenv("RELAY_MODELS"):
        config.llm.google_models = [
            m.strip() for m in os.getenv("RELAY_MODELS").split(",") if m.strip()
        ]
    if os.getenv("RELAY_SEARCH_QUERY"):
        config.slack.search_query = os.getenv("RELAY_SEARCH_QUERY")
    if os.getenv("RELAY_PORT"):
        config.server.port = int(os.getenv("RELAY_PORT"))

    return config


def save_config(config: RelayConfig) -> None:
    """Save configuration to file.

    Secrets that were sourced from environment variables are written as
    empty strings so that they are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    def _secret(key: str, value: str) -> str:
        return "" if key in env_sourced else value

    data = {
        "slack": {
            "token": _secret("slack_token", config.slack.token),
            "search_query": config.slack.search_query,
            "write_back_authors": config.slack.write_back_authors,
            "page_delay": config.slack.page_delay,
            "timeout": config.slack.timeout,
        },
        "asana": {
            "token": _secret("asana_token", config.asana.token),
            "timeout": config.asana.timeout,
        },
        "llm": {
            "provider": config.llm.provider,
            "google_api_key": _secret("google_api_key", config.llm.google_api_key),
            "google_models": config.llm.google_models,
            "anthropic_api_key": _secret("anthropic_api_key", config.llm.anthropic_api_key),
            "anthropic_model": config.llm.anthropic_model,
            "openai_api_key": _secret("openai_api_key", config.llm.openai_api_key),
            "openai_model": config.llm.openai_model,
        },
        "server": {
            "port": config.server.port,
            "sync_window_hours": config.server.sync_window_hours,
        },
        "exclude_list_path": config.exclude_list_path,
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def require_slack_token(config: RelayConfig) -> str:
    """Return the Slack token or fail before any core operation runs."""
    if not config.slack.token:
        raise ConfigurationError(
            "Slack token is not set. Set SLACK_TOKEN or slack.token in ~/.relay/config.json"
        )
    return config.slack.token


def require_asana_token(config: RelayConfig) -> str:
    """Return the Asana token or fail before any tracker operation runs."""
    if not config.asana.token:
        raise ConfigurationError(
            "Asana token is not set. Set ASANA_TOKEN or asana.token in ~/.relay/config.json"
        )
    return config.asana.token


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
