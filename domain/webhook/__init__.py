"""Webhook queue domain exports."""
from .entity import QueuedWebhook, WebhookStatus, truncate_message
from .repository import WebhookQueueRepository

__all__ = ["QueuedWebhook", "WebhookStatus", "WebhookQueueRepository", "truncate_message"]
