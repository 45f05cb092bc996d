"""Sync engine for zotexon - export file, triggers and push notifications."""

from .engine import FileSyncer, SyncOutcome
from .trigger import SyncTrigger, TriggerChannel, trigger_periodically
from .websocket import (
    Connected,
    CreateSubscriptions,
    Subscription,
    SubscriptionError,
    SubscriptionsCreated,
    TopicUpdated,
    WebSocketTrigger,
    WebSocketTriggerBuilder,
    parse_response,
    serialize_request,
)

__all__ = [
    "FileSyncer",
    "SyncOutcome",
    "SyncTrigger",
    "TriggerChannel",
    "trigger_periodically",
    "Connected",
    "CreateSubscriptions",
    "Subscription",
    "SubscriptionError",
    "SubscriptionsCreated",
    "TopicUpdated",
    "WebSocketTrigger",
    "WebSocketTriggerBuilder",
    "parse_response",
    "serialize_request",
]
