# ==============================================================================
# Server Command
# ==============================================================================
"""
Runs the collector HTTP application under uvicorn.
"""

from typing import Annotated

import typer

from postmetric.utils.config import get_settings
from postmetric.utils.logs import configure_logging


def serve(
    host: Annotated[str | None, typer.Option("--host", help="Bind address")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="Bind port")] = None,
    workers: Annotated[
        int | None, typer.Option("--workers", "-w", help="Number of worker processes")
    ] = None,
    reload: Annotated[bool, typer.Option("--reload", help="Reload on code changes")] = False,
) -> None:
    """Start the collection endpoint (defaults from SERVER_* settings)."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)

    uvicorn.run(
        "postmetric.api.server:create_app",
        factory=True,
        host=host or settings.server.host,
        port=port or settings.server.port,
        workers=None if reload else (workers or settings.server.workers),
        reload=reload,
        log_config=None,
        log_level=settings.log_level.lower(),
    )
