from __future__ import annotations


class WalletAPIError(Exception):
    """A wallet API call did not produce a usable value."""


class TransportFailure(WalletAPIError):
    pass


class AuthorizationFailure(WalletAPIError):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"Wallet API rejected credentials (HTTP {status_code})")
        self.status_code = status_code


class MalformedResponse(WalletAPIError):
    pass
