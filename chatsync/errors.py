"""
Error taxonomy for the chat engine.

Every error is handled at the boundary where it occurs; none of them is
allowed to reach the HTTP layer as an unhandled fault.
"""


class ChatSyncError(Exception):
    """Base class for all engine errors."""


class BootstrapFailure(ChatSyncError):
    """No usable identity could be obtained; the engine stays inert."""


class SubscriptionError(ChatSyncError):
    """A log notification could not be delivered; the last snapshot is kept."""


class SendRejected(ChatSyncError):
    """A send precondition was not met; the send is dropped."""


class AppendFailure(ChatSyncError):
    """The message log refused or failed a write."""


class ResponderFailure(ChatSyncError):
    """The responder call did not produce usable text."""


class ResponderTransportError(ResponderFailure):
    """Network, HTTP status or timeout failure talking to the responder."""


class MalformedResponse(ResponderFailure):
    """The responder answered but the payload lacks the expected text field."""
