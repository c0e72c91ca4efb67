"""Upstream adapters: HubSpot REST, Monday GraphQL, and the Zapier relay.

WHY: The bot's core logic only needs label/id lists and a way to hand a
submission to Zapier. This package hides each service's HTTP details.

HOW: Async httpx clients used as context managers. List lookups read
through an injected OptionCache. Every service error is an UpstreamError.

RULES:
- All upstream HTTP goes through these clients
- Authentication tokens come from config loaders at construction time
"""

from syllabot.api.cache import OptionCache
from syllabot.api.hubspot import HubSpotClient
from syllabot.api.models import Option, Pipeline, Record, Stage, UpstreamError
from syllabot.api.monday import MondayClient
from syllabot.api.zapier import ZapierRelay

__all__ = [
    "HubSpotClient",
    "MondayClient",
    "Option",
    "OptionCache",
    "Pipeline",
    "Record",
    "Stage",
    "UpstreamError",
    "ZapierRelay",
]
