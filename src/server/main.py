from __future__ import annotations

from dotenv import load_dotenv
from fastmcp import FastMCP

from walletcache.observability import TelemetryConfig, configure_logging, configure_telemetry

from server.lifespan import app_lifespan
from server.resources import register_resources
from server.settings import WalletSettings
from server.tools import register_tools

load_dotenv()

mcp = FastMCP(
    name="Wallet Cache Server",
    lifespan=app_lifespan,
)

register_tools(mcp)
register_resources(mcp)


def main() -> None:
    telemetry = TelemetryConfig().resolve()
    configure_logging(telemetry.log_level, include_trace_context=telemetry.enabled)
    configure_telemetry(telemetry)

    port = WalletSettings().resolve().server_port
    mcp.run(transport="streamable-http", port=port)


if __name__ == "__main__":
    main()
