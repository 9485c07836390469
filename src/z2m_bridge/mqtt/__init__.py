"""Topic routing, payload translation and outbound commands."""

from .commands import ComponentCommands
from .payload_translator import PayloadTranslator
from .topic_router import RouteKind, TopicRoute, TopicRouter

__all__ = ["ComponentCommands", "PayloadTranslator", "RouteKind", "TopicRoute", "TopicRouter"]
