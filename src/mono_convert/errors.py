"""
Error taxonomy for conversion jobs.

Every terminal failure of a job is one of these classes; the service turns them
into a single failure outcome instead of letting them reach the caller's thread.
"""

from __future__ import annotations


class ConversionError(RuntimeError):
    """Base class for all job-terminating errors."""

    kind: str = "ConversionError"


class IoOpenError(ConversionError):
    """Raised when the input file cannot be opened."""

    kind = "IoOpenError"


class IoMetadataError(ConversionError):
    """Raised when the input file size cannot be determined."""

    kind = "IoMetadataError"


class UnsupportedFormat(ConversionError):  # noqa: N818
    """Raised when no registered container format recognizes the input."""

    kind = "UnsupportedFormat"


class NoSupportedTrack(ConversionError):  # noqa: N818
    """Raised when the container holds no decodable audio track."""

    kind = "NoSupportedTrack"


class UnknownSampleRate(ConversionError):  # noqa: N818
    kind = "UnknownSampleRate"


class UnsupportedCodec(ConversionError):  # noqa: N818
    kind = "UnsupportedCodec"


class OutputCreateError(ConversionError):
    kind = "OutputCreateError"


class DecodeError(ConversionError):
    """Raised when a packet of the selected track fails to decode."""

    kind = "DecodeError"


class WriteError(ConversionError):
    kind = "WriteError"


class FinalizeError(ConversionError):
    kind = "FinalizeError"


class ConversionCancelled(ConversionError):  # noqa: N818
    """Raised when a job is aborted early by user request."""

    kind = "Cancelled"


class StreamReset(Exception):  # noqa: N818
    """Demuxer asked to retry the packet pull."""


class DemuxError(Exception):
    """Packet pull failed for a reason other than a stream reset."""
