"""MCP tools for gateway internals: cache, queues and supported networks."""

import logging

from fastmcp import FastMCP

from chainrelay.clients.networks import get_supported_networks
from chainrelay.server import get_gateway

logger = logging.getLogger(__name__)


def register_network_tools(mcp: FastMCP) -> None:
    """Register cache, queue and network listing tools on the MCP server."""

    @mcp.tool
    async def rpc_cache_stats() -> str:
        """Show RPC cache size, hit rate and eviction counts.

        Returns:
            Cache statistics summary.
        """
        stats = get_gateway().cache.get_stats()
        return (
            f"RPC cache: {stats['size']}/{stats['max_size']} entries, "
            f"hit rate {stats['hit_rate'] * 100:.1f}% "
            f"({stats['hits']} hits, {stats['misses']} misses), "
            f"{stats['sets']} sets, {stats['evictions']} evictions"
        )

    @mcp.tool
    async def clear_rpc_cache(method: str | None = None) -> str:
        """Clear cached RPC results.

        Args:
            method: Only clear this method, e.g. "getBalance". Leave empty
                    to clear every known method.

        Returns:
            How many entries were removed.
        """
        cache = get_gateway().cache
        if method:
            cleared = cache.invalidate(method)
            return f"Cleared {cleared} cached {method} entries."
        cleared = cache.invalidate_all()
        return f"Cleared {cleared} cached entries across all methods."

    @mcp.tool
    async def queue_stats() -> str:
        """Show per-network request queue activity.

        Returns:
            One line per network with running, queued and finished tasks.
        """
        stats = get_gateway().queue.get_stats()
        if not stats:
            return "No network queues have been created yet."

        lines = ["Request queues:"]
        for key, s in sorted(stats.items()):
            lines.append(
                f"  {key}: {s['running']} running, {s['queued']} queued, "
                f"{s['completed']} completed, {s['failed']} failed, {s['retries']} retries"
            )
        return "\n".join(lines)

    @mcp.tool
    async def supported_networks() -> str:
        """List the networks and network types the gateway can reach.

        Returns:
            One line per network with its types and native currency.
        """
        lines = ["Supported networks:"]
        for key, info in get_supported_networks().items():
            currency = info["native_currency"]["symbol"]
            lines.append(f"  {key} ({info['name']}, {currency}): {', '.join(info['types'])}")
        return "\n".join(lines)
