"""Error taxonomy for the call relay.

These exceptions are safe to import from API layers without pulling in socket code.
"""

from __future__ import annotations


class RelayError(Exception):
    status_code: int = 500
    default_detail: str = "Relay error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class CodecError(RelayError, ValueError):
    """A single audio frame could not be converted; the frame is dropped."""

    status_code = 422
    default_detail = "Malformed audio frame."

    def __init__(self, origin: str, sequence: int, detail: str | None = None) -> None:
        self.origin = origin
        self.sequence = sequence
        super().__init__(f"{origin}#{sequence}: {detail or self.default_detail}")


class DispatchError(RelayError):
    """A tool call could not produce a result."""

    kind: str = "DispatchError"
    default_detail = "Function dispatch failed."

    def __init__(self, name: str, detail: str | None = None) -> None:
        self.name = name
        super().__init__(detail)

    def to_payload(self) -> dict[str, str]:
        return {"error": self.kind, "function": self.name, "detail": self.detail}


class UnknownFunctionError(DispatchError):
    kind = "UnknownFunction"
    status_code = 404
    default_detail = "No handler registered under this name."


class HandlerFailedError(DispatchError):
    kind = "HandlerFailed"
    default_detail = "Function handler failed."


class LinkError(RelayError):
    """A socket-level failure on the call, model or observer link."""

    status_code = 502
    default_detail = "Link failure."

    def __init__(self, link: str, detail: str | None = None) -> None:
        self.link = link
        super().__init__(f"{link}: {detail or self.default_detail}")


class HandshakeTimeoutError(LinkError):
    status_code = 504
    default_detail = "Model link did not become ready in time."


class ConfigurationError(RelayError):
    status_code = 500
    default_detail = "Service is not configured."


class UpstreamError(RelayError):
    status_code = 503
    default_detail = "Upstream request failed."
