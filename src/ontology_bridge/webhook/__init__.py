"""Inbound vendor webhooks."""

from ontology_bridge.webhook.server import WebhookDispatcher, WebhookServer

__all__ = ["WebhookDispatcher", "WebhookServer"]
