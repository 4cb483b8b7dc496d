"""Exception hierarchy for tixsnatch."""


class TixsnatchError(Exception):
    """Base exception."""


class InvalidSession(TixsnatchError):
    """Session cookie carries no signing token."""


class AuthError(TixsnatchError):
    """Stored session missing or unusable."""


class ConfigError(TixsnatchError):
    """Invalid configuration."""


class CatalogError(TixsnatchError):
    """Catalog data could not be parsed."""


# --- Gateway outcomes ---


class GatewayError(TixsnatchError):
    """Non-success outcome of a gateway call."""

    def __init__(self, message: str = "", codes: list[str] | None = None) -> None:
        super().__init__(message or ", ".join(codes or []) or self.__class__.__name__)
        self.codes = list(codes or [])


class MalformedRequest(GatewayError):
    """Signature or parameter rejected. Replaying will not help."""


class SessionExpired(GatewayError):
    """Signing token is stale; handled inside the gateway client."""


class SessionInvalid(GatewayError):
    """Token rotation did not restore the session. Needs a fresh login."""


class RateLimited(GatewayError):
    """Gateway throttled the request."""


class SoldOut(GatewayError):
    """Inventory exhausted for the requested tier."""


class TransportError(GatewayError):
    """Timeout or connection failure."""


class UnknownGatewayError(GatewayError):
    """Unrecognised outcome code, treated as transient."""


TRANSIENT_ERRORS = (RateLimited, SoldOut, TransportError, UnknownGatewayError)
