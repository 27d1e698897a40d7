"""
Relay Common Module

Shared infrastructure for ingestion, suggestion and the tracker adapter.
"""

from .config import RelayConfig, load_config, require_slack_token, require_asana_token
from .errors import (
    RelayError,
    ConfigurationError,
    ConnectivityError,
    SlackApiError,
    AiHardFailError,
    MalformedResponseError,
)
from .llm_client import LLMClient

__all__ = [
    "RelayConfig",
    "load_config",
    "require_slack_token",
    "require_asana_token",
    "RelayError",
    "ConfigurationError",
    "ConnectivityError",
    "SlackApiError",
    "AiHardFailError",
    "MalformedResponseError",
    "LLMClient",
]
