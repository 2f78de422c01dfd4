"""FastMCP server bootstrap for AsyncWF."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastmcp import FastMCP

from . import __version__
from .config import AsyncWFSettings, get_settings
from .jobs import Orchestrator
from .storage import TaskStoreError
from .tools import register_tools

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Configure root logging for AsyncWF processes."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def create_server(
    settings: Optional[AsyncWFSettings] = None,
    orchestrator: Orchestrator | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server and reconcile jobs left by a previous run."""

    settings = settings or get_settings()
    orchestrator = orchestrator or Orchestrator.from_settings(settings)

    reconcile_actions: list[dict[str, Any]] = []
    reconcile_error: str | None = None
    try:
        for task in orchestrator.reconcile_orphans():
            reconcile_actions.append(
                {
                    "job_id": task.id,
                    "pid": task.pid,
                    "status": task.status.value,
                    "reconciled_at": task.updated_at.isoformat(),
                }
            )
    except TaskStoreError as exc:
        reconcile_error = str(exc)
        logger.error("Startup reconciliation failed", extra={"error": reconcile_error})

    server = FastMCP(
        name="AsyncWF",
        version=__version__,
        instructions=(
            "AsyncWF runs coding agents as named background jobs. Dispatch jobs with "
            "distinct ids, wait on them together, then fetch each job's output."
        ),
    )

    handles = register_tools(server, orchestrator=orchestrator, settings=settings)

    def status_payload() -> dict[str, Any]:
        status_counts: dict[str, int] = {}
        storage_error = None
        try:
            for task in orchestrator.list_tasks():
                status_counts[task.status.value] = status_counts.get(task.status.value, 0) + 1
        except TaskStoreError as exc:
            storage_error = str(exc)

        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "state_dir": str(settings.state_dir),
            "default_agent": orchestrator.default_agent,
            "agents": sorted(orchestrator.agents),
            "tasks": {
                "count": sum(status_counts.values()),
                "status_counts": status_counts,
                "live_handles": len(orchestrator.registry),
                "error": storage_error,
            },
            "reconcile": {
                "actions": reconcile_actions[-5:],
                "count": len(reconcile_actions),
                "error": reconcile_error,
            },
        }

    @server.resource(
        "resource://asyncwf/status",
        name="asyncwf_status",
        description="Current job counts and runtime state for the AsyncWF server.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource() -> str:
        """Return a JSON string summarizing runtime state."""

        return json.dumps(status_payload())

    setattr(server, "orchestrator", orchestrator)
    setattr(server, "status_payload", status_payload)
    setattr(server, "reconcile_actions", reconcile_actions)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the AsyncWF MCP server."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logger.info(
        "Launching AsyncWF MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "state_dir": str(settings.state_dir),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
