"""State publisher for pub/sub snapshot notifications."""

import logging
from typing import Any

from pubsub import pub

logger = logging.getLogger(__name__)

TOPIC_STATUS = "recording_status"
TOPIC_TRANSCRIPTION = "recording_transcription"
TOPIC_CAPTURE = "recording_capture"
TOPIC_REGISTRY = "registry_changed"


class StatePublisher:
    """Publishes immutable per-recording snapshots using pubsub.pub.

    All recording topics share the message signature
    ``(recording_id, snapshot)``; a listener picks the topics it cares about.
    """

    def __init__(self, recording_id: str):
        """Initialize state publisher.

        Args:
            recording_id: Recording whose updates are published
        """
        self.recording_id = recording_id

    def publish(self, topic: str, snapshot: Any) -> None:
        """Publish a snapshot to the pub/sub topic.

        Listener failures are logged and do not reach the recording.
        """
        try:
            pub.sendMessage(topic, recording_id=self.recording_id, snapshot=snapshot)
        except Exception as e:
            logger.warning(f"Listener on {topic} failed for {self.recording_id}: {e}")


def publish_registry_change(current: Any, stopped: Any) -> None:
    """Publish the registry's current recording and history snapshot."""
    try:
        pub.sendMessage(TOPIC_REGISTRY, current=current, stopped=stopped)
    except Exception as e:
        logger.warning(f"Listener on {TOPIC_REGISTRY} failed: {e}")
