"""Services layer for Notes4Me pipeline coordination."""

from .pipeline import PipelineCoordinator
from .publisher import PipelinePublisher

__all__ = [
    "PipelineCoordinator",
    "PipelinePublisher",
]
