"""Error taxonomy for the chat bridge.

No operation retries automatically. Recovery is always user-initiated
(re-send a message, re-open a chat).
"""


class BridgeError(Exception):
    """Base class for all chat bridge errors."""


class ValidationError(BridgeError):
    """Malformed bot instance, chat service handle or configuration.

    Raised at construction time and never recovered.
    """


class StateError(BridgeError):
    """Operation is not valid for the current session state."""


class NetworkError(BridgeError):
    """A call against the live-chat service or its SDK failed.

    Caught at the start/restore orchestration boundary and resolved into a
    connected-idle UI state.
    """


class MessageDeliveryError(BridgeError):
    """A message or media upload could not be delivered.

    Attributes:
        local_id: Bot-side identifier of the affected message.
    """

    def __init__(self, message: str, local_id: str | None = None):
        super().__init__(message)
        self.local_id = local_id
