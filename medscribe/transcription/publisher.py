"""Session lifecycle publisher for pub/sub event publishing."""

import logging
from typing import Any, Dict, Optional

from pubsub.core import Publisher

from ..models.events import SessionEvent, SESSION_STARTED, SESSION_STOPPED, SESSION_FAILED

logger = logging.getLogger(__name__)

LIFECYCLE_TOPIC = "session_lifecycle"


class SessionEventPublisher:
    """Publishes SessionEvents on a context-owned pypubsub Publisher."""

    def __init__(self, publisher: Publisher, topic: str = LIFECYCLE_TOPIC):
        """Initialize session event publisher.

        Args:
            publisher: The application's Publisher instance
            topic: Pub/sub topic name for lifecycle events
        """
        self.publisher = publisher
        self.topic = topic
        logger.info(f"SessionEventPublisher initialized with topic: {topic}")

    def publish(self, event: SessionEvent) -> None:
        self.publisher.sendMessage(self.topic, event=event)
        logger.debug(f"Published {event.event_type} for session {event.session_id}")

    def started(self, session_id: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self.publish(SessionEvent(SESSION_STARTED, session_id, metadata=metadata or {}))

    def stopped(self, session_id: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self.publish(SessionEvent(SESSION_STOPPED, session_id, metadata=metadata or {}))

    def failed(self, session_id: str, reason: str) -> None:
        self.publish(SessionEvent(SESSION_FAILED, session_id, metadata={"reason": reason}))
