"""Streaming audio-to-mono conversion."""

from .errors import ConversionCancelled, ConversionError
from .events import ConversionOutcome, ProgressEvent
from .probe import AudioInfo, inspect_audio
from .processing import ConversionConfig, ConversionPipeline, ConversionResult
from .service import ConversionHandle, ConversionService

__version__ = "0.1.0"

__all__ = [
    "AudioInfo",
    "ConversionCancelled",
    "ConversionConfig",
    "ConversionError",
    "ConversionHandle",
    "ConversionOutcome",
    "ConversionPipeline",
    "ConversionResult",
    "ConversionService",
    "ProgressEvent",
    "__version__",
    "inspect_audio",
]
