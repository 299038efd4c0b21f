"""Failures raised by the clip service.

Every error carries a :class:`ClipErrorKind` so callers (the HTTP layer, CLI
scripts) can translate it without matching on classes.
"""

from enum import Enum


class ClipErrorKind(str, Enum):
    NO_SUCH_CLIP = "NO_SUCH_CLIP"
    ALREADY_ADDED = "ALREADY_ADDED"
    TOO_MANY_CLIP_NOTES = "TOO_MANY_CLIP_NOTES"
    TOO_MANY_CLIPS = "TOO_MANY_CLIPS"


class ClipServiceError(Exception):
    """Base class for clip service failures."""

    kind: ClipErrorKind
    message = "Clip operation failed"

    def __init__(self, message=None):
        super().__init__(message or self.message)


class NoSuchClipError(ClipServiceError):
    """The clip does not exist or belongs to another user."""

    kind = ClipErrorKind.NO_SUCH_CLIP
    message = "No such clip"


class AlreadyAddedError(ClipServiceError):
    kind = ClipErrorKind.ALREADY_ADDED
    message = "The note has already been added to the clip"


class TooManyClipNotesError(ClipServiceError):
    kind = ClipErrorKind.TOO_MANY_CLIP_NOTES
    message = "Cannot add more notes to this clip"


class TooManyClipsError(ClipServiceError):
    kind = ClipErrorKind.TOO_MANY_CLIPS
    message = "Cannot create more clips"
