"""Error codes, user-facing messages and exceptions for the companion core."""

from enum import Enum


class ErrorKind(str, Enum):
    PERMISSION_DENIED = "PERMISSION_DENIED"
    DEVICE_UNAVAILABLE = "DEVICE_UNAVAILABLE"
    TRANSCRIPTION_FAILED = "TRANSCRIPTION_FAILED"
    COMPLETION_FAILED = "COMPLETION_FAILED"
    SPEECH_FAILED = "SPEECH_FAILED"
    CAPTION_UNSUPPORTED = "CAPTION_UNSUPPORTED"
    VOICE_DETECTION_FAILED = "VOICE_DETECTION_FAILED"


ERROR_MESSAGES = {
    ErrorKind.PERMISSION_DENIED: "Microphone access denied. Try typing instead.",
    ErrorKind.DEVICE_UNAVAILABLE: "No microphone found. Try typing instead.",
    ErrorKind.TRANSCRIPTION_FAILED: "Could not transcribe audio. Try typing instead.",
    ErrorKind.COMPLETION_FAILED: "I'm sorry, I'm having trouble processing that right now.",
    ErrorKind.SPEECH_FAILED: "Voice synthesis temporarily unavailable. Using on-device voice.",
    ErrorKind.CAPTION_UNSUPPORTED: "Live captions are not available.",
    ErrorKind.VOICE_DETECTION_FAILED: "Voice detection failed. Using manual mode.",
}

APOLOGY_MESSAGE = ERROR_MESSAGES[ErrorKind.COMPLETION_FAILED]

# Errors that end voice input for the rest of the session
TEXT_FALLBACK_ERRORS = frozenset({
    ErrorKind.PERMISSION_DENIED,
    ErrorKind.DEVICE_UNAVAILABLE,
    ErrorKind.TRANSCRIPTION_FAILED,
})


class SplatterError(Exception):
    """Base class for companion errors; carries the matching ErrorKind."""

    kind: ErrorKind = ErrorKind.DEVICE_UNAVAILABLE

    @property
    def user_message(self) -> str:
        return ERROR_MESSAGES[self.kind]


class PermissionDeniedError(SplatterError):
    kind = ErrorKind.PERMISSION_DENIED


class DeviceUnavailableError(SplatterError):
    kind = ErrorKind.DEVICE_UNAVAILABLE


class TranscriptionFailedError(SplatterError):
    kind = ErrorKind.TRANSCRIPTION_FAILED


class CompletionFailedError(SplatterError):
    kind = ErrorKind.COMPLETION_FAILED


class SpeechFailedError(SplatterError):
    kind = ErrorKind.SPEECH_FAILED


class CaptionUnsupportedError(SplatterError):
    kind = ErrorKind.CAPTION_UNSUPPORTED


class AudioGraphError(SplatterError):
    """The level analyser could not be built or read."""
    kind = ErrorKind.VOICE_DETECTION_FAILED
