"""Capture state publisher for pub/sub consumers."""

import logging
from pubsub import pub
from ..models.capture import CaptureSnapshot

logger = logging.getLogger(__name__)


class CaptureStatePublisher:
    """Publishes capture snapshots using pubsub.pub."""

    def __init__(self, topic: str = "capture.state"):
        """Initialize state publisher.

        Args:
            topic: Pub/sub topic name for capture snapshots
        """
        self.topic = topic
        logger.info(f"CaptureStatePublisher initialized with topic: {topic}")

    def publish_snapshot(self, snapshot: CaptureSnapshot) -> None:
        """Publish a snapshot to the pub/sub topic.

        Args:
            snapshot: CaptureSnapshot to publish
        """
        pub.sendMessage(self.topic, snapshot=snapshot)
        # logger.debug(f"Published capture state: {snapshot.state.value}")
