"""
Source Handlers

Extensible parsers for different event sources.
Each handler converts source-specific events to a NormalizedSignal.

Available Handlers:
- SlackMessageParser: Slack search matches and history messages
"""

from .base import BaseHandler
from .slack import SlackMessageParser, is_document_url

__all__ = [
    "BaseHandler",
    "SlackMessageParser",
    "is_document_url",
]
