"""Push trigger backed by the Zotero streaming API.

Protocol (https://www.zotero.org/support/dev/web_api/v3/streaming_api):

1. the server greets with ``{"event": "connected", "retry": 10000}``
2. the client sends ``{"action": "createSubscriptions", "subscriptions": [...]}``
3. the server confirms with ``{"event": "subscriptionsCreated", ...}``
4. every library change arrives as ``{"event": "topicUpdated", ...}``

Any deviation ends the trigger with an error; there is no reconnect.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..cancellation import CancellationToken
from ..exceptions import (
    OperationCancelledError,
    WebSocketConnectionError,
    WebSocketDecodeError,
    WebSocketUnexpectedResponseError,
)
from ..utils import STREAM_URL, user_topic
from .trigger import TriggerChannel

logger = logging.getLogger(__name__)


# =========================
# Messages
# =========================


@dataclass
class Subscription:
    api_key: str
    topics: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"apiKey": self.api_key, "topics": list(self.topics)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Subscription:
        return cls(api_key=data["apiKey"], topics=list(data.get("topics", [])))


@dataclass
class SubscriptionError:
    api_key: str
    topic: str
    error: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SubscriptionError:
        return cls(
            api_key=data.get("apiKey", ""),
            topic=data.get("topic", ""),
            error=data["error"],
        )


@dataclass
class CreateSubscriptions:
    """Request subscribing an API key to one or more topics."""

    subscriptions: list[Subscription]

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": "createSubscriptions",
            "subscriptions": [s.to_dict() for s in self.subscriptions],
        }


@dataclass
class Connected:
    retry: int


@dataclass
class SubscriptionsCreated:
    subscriptions: list[Subscription]
    errors: list[SubscriptionError]


@dataclass
class TopicUpdated:
    topic: str
    version: int


Request = CreateSubscriptions
Response = Union[Connected, SubscriptionsCreated, TopicUpdated]


def serialize_request(request: Request) -> str:
    """Encode a request as the JSON text sent over the socket."""
    return json.dumps(request.to_dict(), separators=(",", ":"))


def parse_response(text: str) -> Response:
    """Decode a server message.

    Raises:
        WebSocketDecodeError: If the text is not JSON, has an unknown event
            or lacks required fields
    """
    try:
        data = json.loads(text)
    except ValueError as e:
        raise WebSocketDecodeError(f"invalid JSON message: {text!r}") from e
    if not isinstance(data, dict):
        raise WebSocketDecodeError(f"message is not an object: {text!r}")

    event = data.get("event")
    try:
        if event == "connected":
            return Connected(retry=int(data["retry"]))
        if event == "subscriptionsCreated":
            return SubscriptionsCreated(
                subscriptions=[
                    Subscription.from_dict(s) for s in data["subscriptions"]
                ],
                errors=[SubscriptionError.from_dict(e) for e in data["errors"]],
            )
        if event == "topicUpdated":
            return TopicUpdated(topic=data["topic"], version=int(data["version"]))
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise WebSocketDecodeError(f"malformed '{event}' message: {text!r}") from e

    raise WebSocketDecodeError(f"unknown event in message: {text!r}")


async def read_response(connection: Any) -> Response:
    """Receive the next text frame and decode it, skipping binary frames."""
    while True:
        try:
            message = await connection.recv()
        except ConnectionClosed as e:
            raise WebSocketConnectionError(f"connection closed: {e}") from e
        logger.debug(f"received message: {message!r}")

        if isinstance(message, str):
            response = parse_response(message)
            logger.debug(f"received response: {response!r}")
            return response
        logger.debug("ignoring non-text message")


async def send_request(connection: Any, request: Request) -> None:
    logger.debug(f"sending request: {request!r}")
    try:
        await connection.send(serialize_request(request))
    except ConnectionClosed as e:
        raise WebSocketConnectionError(f"connection closed: {e}") from e


# =========================
# Trigger
# =========================


class WebSocketTrigger:
    """Translates library change notifications into trigger signals."""

    def __init__(self, connection: Any, channel: TriggerChannel):
        self.connection = connection
        self.channel = channel

    @staticmethod
    def builder(
        api_key: str,
        user_id: int,
        channel: TriggerChannel,
        url: Optional[str] = None,
    ) -> WebSocketTriggerBuilder:
        return WebSocketTriggerBuilder(api_key, user_id, channel, url=url)

    async def run(self, cancellation_token: CancellationToken) -> None:
        """Read notifications until cancelled.

        Raises:
            WebSocketConnectionError: If the connection drops
            WebSocketDecodeError: If a message cannot be decoded
            WebSocketUnexpectedResponseError: On any event but topicUpdated
        """
        try:
            while True:
                try:
                    response = await cancellation_token.run(
                        read_response(self.connection)
                    )
                except OperationCancelledError:
                    logger.info("WebSocket trigger cancelled")
                    return

                if not isinstance(response, TopicUpdated):
                    raise WebSocketUnexpectedResponseError(response)
                logger.info(
                    "Triggering export due to library change notification "
                    f"(version {response.version})"
                )
                self.channel.send()
        finally:
            await self.connection.close()


class WebSocketTriggerBuilder:
    """Establishes the connection and subscription for a WebSocketTrigger."""

    def __init__(
        self,
        api_key: str,
        user_id: int,
        channel: TriggerChannel,
        url: Optional[str] = None,
    ):
        self.api_key = api_key
        self.user_id = user_id
        self.channel = channel
        self.url = url or STREAM_URL

    async def try_build(self) -> WebSocketTrigger:
        """Connect and subscribe to the user's library.

        Raises:
            WebSocketError: If any step of the handshake fails
        """
        connection = await self.connect()
        try:
            await self.subscribe(connection)
        except Exception:
            await connection.close()
            raise
        return WebSocketTrigger(connection, self.channel)

    async def connect(self) -> Any:
        try:
            connection = await websockets.connect(self.url)
        except (OSError, WebSocketException) as e:
            raise WebSocketConnectionError(
                f"failed to connect to {self.url}: {e}"
            ) from e

        try:
            response = await read_response(connection)
            if not isinstance(response, Connected):
                logger.error("failed to connect to WebSocket")
                raise WebSocketUnexpectedResponseError(response)
        except Exception:
            await connection.close()
            raise

        logger.debug(f"WebSocket connected to {self.url}")
        return connection

    async def subscribe(self, connection: Any) -> None:
        request = CreateSubscriptions(
            subscriptions=[
                Subscription(api_key=self.api_key, topics=[user_topic(self.user_id)])
            ]
        )
        await send_request(connection, request)
        response = await read_response(connection)
        if isinstance(response, SubscriptionsCreated) and not response.errors:
            logger.debug("successfully subscribed to library updates")
            return
        logger.error("failed to subscribe to library updates")
        raise WebSocketUnexpectedResponseError(response)
