"""Exception types raised by the broker layer."""


class BrokerError(Exception):
    """Base exception for broker errors."""
    pass


class BrokerConnectionError(BrokerError):
    """Broker is unreachable or the connection was dropped."""
    pass


class TopologyError(BrokerError):
    """An exchange, queue or binding could not be declared."""
    pass


class ChannelUnavailableError(BrokerError):
    """Raised when the broker channel is used before it is open."""
    pass


class HandlerError(BrokerError):
    """A message handler raised while processing a delivery."""
    pass


class MessageValidationError(ValueError):
    """Payload is not valid JSON or does not match the expected envelope."""
    pass


class DatabaseError(Exception):
    """Profile store query kept failing or a session could not be released."""
    pass
