"""Pipeline event publisher over pubsub.pub topics."""

import logging
from pathlib import Path
from typing import Callable, Optional

from pubsub import pub

from ..models.pipeline import EventType, PipelineEvent, PipelineStage

logger = logging.getLogger(__name__)

DEFAULT_TOPIC_PREFIX = "pipeline"


class PipelinePublisher:
    """Publishes PipelineEvents on one pubsub topic per event type.

    Topics are ``<prefix>.progress``, ``<prefix>.completed``,
    ``<prefix>.failed`` and ``<prefix>.warning``. Every message carries a
    single ``event`` argument. Listeners are held weakly by pubsub, so keep a
    reference to whatever you subscribe.
    """

    def __init__(self, prefix: str = DEFAULT_TOPIC_PREFIX):
        """Initialize pipeline publisher.

        Args:
            prefix: Topic prefix, so separate coordinators don't hear each other
        """
        self.prefix = prefix
        logger.info(f"PipelinePublisher initialized with topic prefix: {prefix}")

    def topic(self, event_type: EventType) -> str:
        return f"{self.prefix}.{event_type.value}"

    def publish(self, event: PipelineEvent) -> None:
        """Deliver ``event`` to its topic. A failing listener is logged, never raised."""
        topic = self.topic(event.event_type)
        try:
            pub.sendMessage(topic, event=event)
        except Exception as e:
            logger.error(f"Pipeline event listener failed on {topic}: {e}")
            return
        logger.debug(f"Published {event.event_type.value} event: {event.stage.value} {event.recording_path}")

    def progress(self, recording_path: Path, stage: PipelineStage, progress: Optional[int] = None,
                 chars_emitted: Optional[int] = None, message: str = "") -> None:
        self.publish(PipelineEvent(
            event_type=EventType.PROGRESS,
            recording_path=recording_path,
            stage=stage,
            message=message,
            progress=progress,
            chars_emitted=chars_emitted,
        ))

    def completed(self, recording_path: Path, stage: PipelineStage, message: str = "") -> None:
        self.publish(PipelineEvent(
            event_type=EventType.COMPLETED,
            recording_path=recording_path,
            stage=stage,
            message=message,
        ))

    def failed(self, recording_path: Optional[Path], stage: PipelineStage, error: Exception) -> None:
        self.publish(PipelineEvent(
            event_type=EventType.FAILED,
            recording_path=recording_path,
            stage=stage,
            message=getattr(error, "summary", str(error)),
            error=error,
        ))

    def warning(self, recording_path: Optional[Path], stage: PipelineStage, message: str) -> None:
        self.publish(PipelineEvent(
            event_type=EventType.WARNING,
            recording_path=recording_path,
            stage=stage,
            message=message,
        ))

    def subscribe(self, listener: Callable[[PipelineEvent], None], event_type: EventType) -> None:
        """Subscribe ``listener(event)`` to one event type."""
        pub.subscribe(listener, self.topic(event_type))

    def subscribe_all(self, listener: Callable[[PipelineEvent], None]) -> None:
        for event_type in EventType:
            self.subscribe(listener, event_type)

    def unsubscribe(self, listener: Callable[[PipelineEvent], None], event_type: EventType) -> None:
        """Stop delivery to ``listener``. Running work is not cancelled."""
        if pub.isSubscribed(listener, self.topic(event_type)):
            pub.unsubscribe(listener, self.topic(event_type))

    def unsubscribe_all(self, listener: Callable[[PipelineEvent], None]) -> None:
        for event_type in EventType:
            self.unsubscribe(listener, event_type)
