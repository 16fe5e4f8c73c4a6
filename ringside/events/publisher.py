"""
Event Publisher Interface

Abstract base class for delivering lifecycle events to in-process
consumers (notifications, audit). The lifecycle_events table is the source
of truth; publishers only deliver.
"""
import abc
import json
import hashlib
from typing import Dict, Any, List

ROSTER_CHANNEL = "roster"

REQUIRED_FIELDS = ["event_type", "entity_type", "entity_id", "occurred_at"]


def entity_channel(entity_type: str, entity_id: int) -> str:
    """Channel carrying the events of a single entity (e.g. "wrestler:7")."""
    return f"{entity_type}:{entity_id}"


class EventPublisher(abc.ABC):
    """
    Abstract base class for event publishers.

    Messages are serialized with sort_keys=True so the same event always
    produces the same bytes and the same event_hash.
    """

    @abc.abstractmethod
    async def publish(self, channel: str, message: Dict[str, Any]) -> None:
        """
        Publish message to channel.

        Args:
            channel: Channel name (e.g., "roster" or "wrestler:7")
            message: Event payload (must contain REQUIRED_FIELDS)
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def subscribe(self, channel: str):
        """
        Subscribe to channel and yield messages.

        Args:
            channel: Channel name to subscribe to
        Yields:
            Parsed message dict
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def close(self) -> None:
        """Close publisher and release subscribers."""
        raise NotImplementedError

    async def publish_event(self, message: Dict[str, Any]) -> List[str]:
        """
        Publish an event on the roster channel and on its entity channel.

        Returns:
            The channels the event went out on
        """
        self.validate_message(message)
        message = dict(message)
        message.setdefault("event_hash", self._compute_message_hash(message))
        channels = [
            ROSTER_CHANNEL,
            entity_channel(message["entity_type"], message["entity_id"]),
        ]
        for channel in channels:
            await self.publish(channel, message)
        return channels

    def _serialize_message(self, message: Dict[str, Any]) -> str:
        return json.dumps(message, sort_keys=True, separators=(',', ':'), default=str)

    def _compute_message_hash(self, message: Dict[str, Any]) -> str:
        """SHA256 of the serialized message."""
        serialized = self._serialize_message(message)
        return hashlib.sha256(serialized.encode()).hexdigest()

    def validate_message(self, message: Dict[str, Any]) -> bool:
        """
        Validate message has the fields every consumer relies on.

        Raises:
            ValueError: If required fields missing
        """
        missing = [f for f in REQUIRED_FIELDS if f not in message]
        if missing:
            raise ValueError(f"Message missing required fields: {missing}")
        return True
