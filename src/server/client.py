from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from server.errors import AuthorizationFailure, MalformedResponse, TransportFailure
from server.models import AccountBalance, SupportedPairs, UnspentOutputs, WalletAddresses

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class WalletAPIClient:
    """Thin async client over the wallet backend.

    One method per cached domain value. Every failure is raised as a
    ``WalletAPIError`` subclass; nothing is retried here.
    """

    def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")

    async def fetch_balance(self) -> AccountBalance:
        return await self._get("/balance", AccountBalance)

    async def fetch_wallet_addresses(self) -> list[str]:
        wallets = await self._get("/wallets", WalletAddresses)
        return list(wallets.addresses)

    async def fetch_unspent_outputs(self, addresses: Sequence[str]) -> UnspentOutputs:
        if not addresses:
            return UnspentOutputs.empty()
        return await self._get(
            "/unspent", UnspentOutputs, params={"active": "|".join(addresses)}
        )

    async def fetch_supported_pairs(self, fiat_currency: str) -> SupportedPairs:
        return await self._get(
            "/simple-buy/pairs", SupportedPairs, params={"fiatCurrency": fiat_currency}
        )

    async def _get(
        self, path: str, model: type[M], params: dict[str, Any] | None = None
    ) -> M:
        url = f"{self._base_url}{path}"
        try:
            response = await self._client.get(url, params=params)
        except httpx.TransportError as exc:
            raise TransportFailure(f"GET {path} failed: {exc}") from exc

        if response.status_code in (401, 403):
            raise AuthorizationFailure(response.status_code)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TransportFailure(f"GET {path} returned HTTP {response.status_code}") from exc

        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            logger.warning("Malformed response from %s", path)
            raise MalformedResponse(f"GET {path} returned an unexpected payload") from exc
