"""Exceptions raised by the giftaid package."""


class GiftAidError(Exception):
    """Base class for errors raised by this package."""


class IRmarkError(GiftAidError):
    """The outgoing envelope cannot carry an IRmark.

    Raised when the IRmark element or its placeholder token is missing
    or appears more than once.
    """


class GatewayConnectionError(GiftAidError):
    """The HTTP round trip to the gateway failed before a response arrived."""
