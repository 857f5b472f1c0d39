class SmsSendError(RuntimeError):
    """Twilio refused or failed to accept an outbound SMS."""


class AIProviderError(RuntimeError):
    """The text-generation endpoint could not produce a reply."""
