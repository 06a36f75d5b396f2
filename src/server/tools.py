from __future__ import annotations

import asyncio

from fastmcp import Context, FastMCP

from walletcache import CacheError, LifecycleSignals
from walletcache.observability import traced_tool

from server.models import AccountBalance, SupportedPairs, UnspentOutputs
from server.repositories import WalletServices


def format_balance(balance: AccountBalance) -> str:
    return (
        f"Available: {balance.available} {balance.currency}\n"
        f"Pending: {balance.pending} {balance.currency}\n"
        f"Total: {balance.total} {balance.currency}"
    )


def format_unspent_outputs(outputs: UnspentOutputs) -> str:
    if not outputs.count:
        return "No unspent outputs."
    lines = [f"- {o.tx_hash}:{o.index} value={o.value} conf={o.confirmations}" for o in outputs.outputs]
    lines.append(f"Total: {outputs.total_value} across {outputs.count} output(s)")
    return "\n".join(lines)


def format_pairs(pairs: SupportedPairs) -> str:
    if not pairs.pairs:
        return "No supported pairs."
    return "\n".join(f"- {p.pair} (min {p.buy_min}, max {p.buy_max})" for p in pairs.pairs)


async def refresh_all(services: WalletServices) -> str:
    """Force every cache to refresh; one failure does not hide the others."""
    results = await asyncio.gather(
        *(cache.force_refresh() for cache in services.caches),
        return_exceptions=True,
    )
    lines = []
    for cache, result in zip(services.caches, results):
        if isinstance(result, CacheError):
            lines.append(f"{cache.identifier}: failed ({result})")
        elif isinstance(result, BaseException):
            raise result
        else:
            lines.append(f"{cache.identifier}: refreshed")
    return "\n".join(lines)


def register_tools(mcp: FastMCP) -> None:

    @mcp.tool(tags={"wallet", "balance"})
    @traced_tool()
    async def get_balance(
        ctx: Context = Context,  # type: ignore[assignment]
    ) -> str:
        """Account balance, served from cache when fresh."""
        services: WalletServices = ctx.lifespan_context["services"]
        try:
            balance = await services.balances.balance()
        except CacheError as exc:
            return f"Balance unavailable: {exc}"
        return format_balance(balance)

    @mcp.tool(tags={"wallet", "bitcoin"})
    @traced_tool()
    async def get_unspent_outputs(
        ctx: Context = Context,  # type: ignore[assignment]
    ) -> str:
        """Unspent outputs across all wallet addresses."""
        services: WalletServices = ctx.lifespan_context["services"]
        try:
            outputs = await services.unspent_outputs.unspent_outputs()
        except CacheError as exc:
            return f"Unspent outputs unavailable: {exc}"
        return format_unspent_outputs(outputs)

    @mcp.tool(tags={"wallet", "simple-buy"})
    @traced_tool()
    async def get_supported_pairs(
        fiat_currency: str | None = None,
        ctx: Context = Context,  # type: ignore[assignment]
    ) -> str:
        """Simple-buy trading pairs, optionally switching the fiat currency first."""
        services: WalletServices = ctx.lifespan_context["services"]
        if fiat_currency:
            services.supported_pairs.set_fiat_currency(fiat_currency.upper())
        try:
            pairs = await services.supported_pairs.supported_pairs()
        except CacheError as exc:
            return f"Supported pairs unavailable: {exc}"
        return format_pairs(pairs)

    @mcp.tool(name="refresh_all", tags={"wallet", "admin"})
    @traced_tool(name="refresh_all")
    async def refresh_caches(
        ctx: Context = Context,  # type: ignore[assignment]
    ) -> str:
        """Force a refresh of every wallet cache."""
        return await refresh_all(ctx.lifespan_context["services"])

    @mcp.tool(tags={"wallet", "session"})
    @traced_tool()
    async def login(
        ctx: Context = Context,  # type: ignore[assignment]
    ) -> str:
        """Signal a completed login; login-aware caches start refreshing."""
        signals: LifecycleSignals = ctx.lifespan_context["signals"]
        signals.login()
        return "Login signalled."

    @mcp.tool(tags={"wallet", "session"})
    @traced_tool()
    async def logout(
        ctx: Context = Context,  # type: ignore[assignment]
    ) -> str:
        """Signal a completed logout; session caches are flushed or marked stale."""
        signals: LifecycleSignals = ctx.lifespan_context["signals"]
        signals.logout()
        return "Logout signalled."
