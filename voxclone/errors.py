"""
Error kinds and result type for the voice cloning pipeline.

Components raise the exceptions below. The orchestrator's public operations
catch them and hand back a Result so callers branch on the error kind
instead of unwinding the stack.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Closed set of failure kinds surfaced to callers."""
    UNSUPPORTED_AUDIO_FORMAT = "unsupported_audio_format"
    DEVICE_UNAVAILABLE = "device_unavailable"
    RECORDING_INTERRUPTED = "recording_interrupted"
    TEXT_TOO_LONG = "text_too_long"
    PROFILE_NOT_FOUND = "profile_not_found"
    TRAINING_FAILED = "training_failed"
    SYNTHESIS_FAILED = "synthesis_failed"
    STORAGE_FAILED = "storage_failed"


class VoxCloneError(Exception):
    """Base class for all pipeline failures."""
    kind: ErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class UnsupportedAudioFormat(VoxCloneError):
    kind = ErrorKind.UNSUPPORTED_AUDIO_FORMAT


class DeviceUnavailable(VoxCloneError):
    kind = ErrorKind.DEVICE_UNAVAILABLE


class RecordingInterrupted(VoxCloneError):
    kind = ErrorKind.RECORDING_INTERRUPTED


class TextTooLong(VoxCloneError):
    kind = ErrorKind.TEXT_TOO_LONG


class ProfileNotFound(VoxCloneError):
    kind = ErrorKind.PROFILE_NOT_FOUND


class TrainingFailed(VoxCloneError):
    kind = ErrorKind.TRAINING_FAILED


class SynthesisFailed(VoxCloneError):
    kind = ErrorKind.SYNTHESIS_FAILED


class StorageFailed(VoxCloneError):
    """Artifact or registry storage could not be read or written."""
    kind = ErrorKind.STORAGE_FAILED


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a public pipeline operation.

    Exactly one of ``value`` / ``error`` is meaningful: ``ok`` tells which.

    Example:
        result = orchestrator.clone(request)
        if result.ok:
            save_audio(result.value, "out.wav")
        elif result.error.kind is ErrorKind.TEXT_TOO_LONG:
            ...
    """
    value: T | None = None
    error: VoxCloneError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: VoxCloneError) -> "Result[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value
