"""Exception hierarchy shared by the chat client and the reminder scanner."""


class JuristMindError(Exception):
    """Base class for all Jurist Mind errors."""


# -- Conversation client -------------------------------------------------------


class AuthRequired(JuristMindError):
    """An action was attempted without a signed-in identity."""


class SubmitInProgress(JuristMindError):
    """A submit was attempted while another one is still streaming."""


class TransportFailure(JuristMindError):
    """The stream could not be opened or read (network error, non-2xx)."""


class MalformedFrame(JuristMindError):
    """A stream frame whose payload is not a JSON object."""

    def __init__(self, frame: str, reason: str) -> None:
        super().__init__(f"Malformed frame ({reason}): {frame[:120]!r}")
        self.frame = frame
        self.reason = reason


class FeedbackRejected(JuristMindError):
    """The feedback endpoint answered with a non-2xx status."""


# -- Reminder scanner ----------------------------------------------------------


class LookupFailure(JuristMindError):
    """The owning user's email address could not be resolved."""


class SendFailure(JuristMindError):
    """The email provider did not accept a reminder."""


class RunFailure(JuristMindError):
    """A scan aborted because of an unexpected error."""
