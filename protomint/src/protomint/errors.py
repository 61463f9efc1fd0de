"""
Exception hierarchy for the mint pipeline.

Every error carries the HTTP status the server answers with. Client mistakes
(bad address, not enough funds, undecodable container) map to 400, failures
of providers, encoders or extraction map to 500.
"""

from __future__ import annotations

from typing import Any


class ProtomintError(Exception):
    """Base class for all pipeline errors."""

    http_status = 500

    def to_dict(self) -> dict[str, Any]:
        return {"error": str(self)}


class InvalidAddressError(ProtomintError):
    http_status = 400

    def __init__(self, address: str | None, reason: str = "Invalid address") -> None:
        self.address = address
        self.reason = reason
        super().__init__(reason)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.reason, "address": self.address}


class InvalidRequestError(ProtomintError):
    http_status = 400


class ProviderError(ProtomintError):
    """A single provider failed (bad status, RPC error, malformed body, timeout)."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class ProviderExhaustedError(ProtomintError):
    """Every provider in a category failed. The last error is the cause."""

    def __init__(self, message: str, errors: list[Exception] | None = None) -> None:
        self.errors = errors or []
        super().__init__(message)

    @property
    def last_error(self) -> Exception | None:
        return self.errors[-1] if self.errors else None

    def to_dict(self) -> dict[str, Any]:
        details = str(self.last_error) if self.last_error else str(self)
        return {"error": str(self), "details": details}


class BroadcastExhaustedError(ProviderExhaustedError):
    pass


class InsufficientFundsError(ProtomintError):
    http_status = 400

    def __init__(self, required: int, available: int) -> None:
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient funds. Need {required} sats, but only have {available} sats."
        )

    @property
    def shortfall(self) -> int:
        return max(self.required - self.available, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": str(self),
            "required": self.required,
            "available": self.available,
            "shortfall": self.shortfall,
        }


class EncodingError(ProtomintError):
    """The protocol payload could not be built."""


class ContainerDecodeError(ProtomintError):
    """The submitted PSBT is not valid hex/base64 or not a PSBT at all."""

    http_status = 400


class FinalizationError(ProtomintError):
    """An input could not be finalized. Logged, never fatal on its own."""

    def __init__(self, index: int, reason: str) -> None:
        self.index = index
        super().__init__(f"Failed to finalize input {index}: {reason}")


class ExtractionError(ProtomintError):
    """The container cannot produce a valid network transaction."""
