"""FastMCP server bootstrap for agentwatch."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastmcp import Context, FastMCP

from . import __version__
from .config import WatchSettings, get_settings
from .monitor import Monitor
from .tools import register_tools


def configure_logging(level: str) -> None:
    """Configure root logging for the agentwatch server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def create_server(
    settings: Optional[WatchSettings] = None,
    monitor: Monitor | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server over a monitor's data store."""

    settings = settings or get_settings()
    monitor = monitor or Monitor.from_settings(settings)
    store = monitor.store

    server = FastMCP(
        name="agentwatch",
        version=__version__,
        instructions=(
            "agentwatch watches local git repositories and running coding-agent "
            "processes. Use the tools to read repository and agent snapshots, and "
            "to push wrapper-reported agent state."
        ),
    )

    handles = register_tools(server, store=store)

    @server.resource(
        "resource://agentwatch/status",
        name="agentwatch_status",
        title="agentwatch Status",
        description="Summarizes tracked repositories, agents and listening ports.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing the current snapshots."""

        repos = store.snapshot_repos()
        agents = store.snapshot_agents()
        ports = store.snapshot_ports()

        state_counts: dict[str, int] = {}
        for agent in agents:
            state_counts[agent.state.value] = state_counts.get(agent.state.value, 0) + 1

        timed_out = [repo.path for repo in repos if repo.health.timed_out]
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "monitor": {"running": monitor.running},
            "repos": {
                "count": len(repos),
                "dirty_count": sum(1 for repo in repos if repo.dirty),
                "ignored_count": store.snapshot_repo_ignored_count(),
                "errors": store.snapshot_repo_errors(),
                "timed_out": timed_out,
            },
            "agents": {
                "count": len(agents),
                "state_counts": state_counts,
                "awaiting_user": sorted(agent.pid for agent in agents if agent.awaiting_user),
            },
            "ports": {
                "count": len(ports),
                "agent_count": len(store.snapshot_port_agents()),
            },
            "process_log": {
                "log_dir": str(monitor.process_logger.log_dir) if monitor.process_logger else None,
                "scan_count": monitor.process_logger.scan_count if monitor.process_logger else 0,
            },
            "request_id": getattr(context, "request_id", None),
        }
        return json.dumps(payload)

    setattr(server, "monitor", monitor)
    setattr(server, "store", store)
    setattr(server, "tool_handles", handles)
    return server


async def _serve(server: FastMCP, monitor: Monitor) -> None:
    await monitor.start()
    try:
        await server.run_async()
    finally:
        await monitor.stop()


def main() -> None:
    """Entry point for running the agentwatch server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    monitor = Monitor.from_settings(settings)
    server = create_server(settings, monitor)
    logging.getLogger(__name__).info(
        "Launching agentwatch server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "roots": [str(root) for root in settings.roots],
            "log_dir": str(settings.log_dir),
        },
    )
    asyncio.run(_serve(server, monitor))


if __name__ == "__main__":
    main()
