from __future__ import annotations


class GatewayError(Exception):
    """Base class for every failure surfaced by the gateway."""

    status_code: int = 500
    code: str = "gateway_error"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def to_payload(self) -> dict[str, dict[str, str]]:
        return {"error": {"code": self.code, "message": self.detail, "hint": describe_error(self)}}


class ConfigurationError(GatewayError):
    status_code = 500
    code = "configuration_error"


class ModelNotFoundError(ConfigurationError):
    status_code = 404
    code = "model_not_found"


class InvalidRequestError(GatewayError):
    status_code = 400
    code = "invalid_request"


class RateLimitError(GatewayError):
    status_code = 429
    code = "rate_limited"

    def __init__(self, detail: str = "Rate limit exceeded", retry_after: float | None = None) -> None:
        super().__init__(detail)
        self.retry_after = retry_after


class TransportError(GatewayError):
    status_code = 502
    code = "transport_error"


class UpstreamTimeoutError(TransportError):
    status_code = 504
    code = "upstream_timeout"


class VendorError(GatewayError):
    status_code = 502
    code = "vendor_error"

    def __init__(self, status: int, body: str, vendor: str | None = None) -> None:
        detail = body if len(body) <= 500 else body[:500] + "…"
        prefix = f"{vendor} returned" if vendor else "Vendor returned"
        super().__init__(f"{prefix} {status}: {detail}")
        self.status = status
        self.body = body
        self.vendor = vendor


class StreamParseError(GatewayError):
    status_code = 502
    code = "stream_parse_error"


class RequestCancelled(GatewayError):
    status_code = 499
    code = "cancelled"

    def __init__(self, detail: str = "Request cancelled") -> None:
        super().__init__(detail)


def describe_error(exc: BaseException) -> str:
    """Turn a gateway failure into a hint a user can act on."""
    if isinstance(exc, RateLimitError):
        return "Too many requests; wait a moment or upgrade the API plan"
    if isinstance(exc, UpstreamTimeoutError):
        return "Connection timed out; check the network or configure a proxy"
    if isinstance(exc, TransportError):
        return "Network connection failed; check network settings or firewall"
    if isinstance(exc, ModelNotFoundError):
        return "The requested model does not exist or is unavailable"
    if isinstance(exc, VendorError):
        body = exc.body.lower()
        if exc.status == 401:
            return "API key is invalid or expired"
        if exc.status == 403:
            return "API key lacks permission or the account balance is insufficient"
        if exc.status == 404:
            if "model" in body:
                return "The requested model does not exist or is unavailable"
            return "API endpoint not found; check the base URL"
        if exc.status == 400:
            return "Malformed request; check the vendor configuration"
        if "insufficient_quota" in body or "quota" in body:
            return "Account quota exhausted; check the balance or plan"
        if exc.status in (502, 503):
            return "Service temporarily unavailable; retry later"
        if exc.status >= 500:
            return "Vendor internal error; retry later"
    return str(exc)
