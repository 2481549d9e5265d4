"""Error taxonomy shared by the store, the relay and the HTTP layer.

The HTTP layer maps these onto status codes: ``NotFoundError`` is a 404,
``ConfigurationError`` and every ``UpstreamError`` surface as a 500 carrying
their message, which is written to be shown to the user as-is.
"""

from __future__ import annotations


class SalesAssistantError(Exception):
    """Base class for every error raised on purpose by this package."""


class NotFoundError(SalesAssistantError):
    pass


class ConfigurationError(SalesAssistantError):
    pass


class UpstreamError(SalesAssistantError):
    """The text-generation API failed or returned nothing usable."""


class InvalidApiKeyError(UpstreamError):
    pass


class QuotaExceededError(UpstreamError):
    pass


class PermissionDeniedError(UpstreamError):
    pass
