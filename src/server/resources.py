from __future__ import annotations

from fastmcp import Context, FastMCP

from server.repositories import WalletServices


def cache_health_report(services: WalletServices) -> str:
    lines = []
    for cache in services.caches:
        age = cache.age()
        age_text = f"{age:.1f}s" if age is not None else "never"
        status = "fresh" if cache.is_usable else cache.state.value
        lines.append(
            f"{cache.identifier}: status={status} policy={cache.policy.describe()} age={age_text}"
        )
    return "\n".join(lines)


def register_resources(mcp: FastMCP) -> None:

    @mcp.resource("cache://wallet/health")
    async def cache_health(ctx: Context = Context) -> str:  # type: ignore[assignment]
        """Freshness of every wallet cache."""
        services: WalletServices = ctx.lifespan_context["services"]
        return cache_health_report(services)
