"""FastMCP entry point: mounts the scene and history sub-servers."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastmcp import FastMCP

from . import runtime, tracing
from .tools.history import history_server
from .tools.scenes import scenes_server

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(server: FastMCP):
    """Set up tracing on startup; close the client and the store on shutdown."""
    tracing.setup()
    yield {}
    closed = await runtime.shutdown()
    tracing.shutdown()
    logger.info("Lifespan shutdown: closed %d resource(s)", closed)


app = FastMCP(
    "scene-brain",
    instructions=(
        "Natural-language scene editor for short videos. Each instruction "
        "becomes one add, edit, delete or trim of a Remotion scene, or a "
        "clarification question. Every change is recorded and can be reverted."
    ),
    lifespan=_lifespan,
)

app.mount(scenes_server)
app.mount(history_server)


def main() -> None:
    """Entry-point for ``scene-brain-mcp`` console script."""
    app.run()


if __name__ == "__main__":
    main()
