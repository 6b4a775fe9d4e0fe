"""Error types surfaced by the question pipeline."""

from typing import Optional


class PrepalError(Exception):
    """Base class for PrepositionPal errors."""


class CredentialError(PrepalError):
    """
    The generative service rejected the credential or the account is not
    entitled to the requested model. Retrying with the same key will not help;
    the caller should ask the learner to re-authenticate.
    """
    retryable = False


class GenerationError(PrepalError):
    """
    A transient generation failure (network, rate limit, malformed response).

    Raised by the orchestrator with ``round_index`` set so the caller can
    offer a retry of the same round.
    """
    retryable = True

    def __init__(self, message: str, round_index: Optional[int] = None):
        super().__init__(message)
        self.round_index = round_index


class VideoTimeoutError(GenerationError):
    """A video job did not complete within the polling bound."""
