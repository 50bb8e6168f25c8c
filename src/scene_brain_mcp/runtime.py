"""Process-level holder for the orchestrator used by the MCP tools.

The server is the composition root: the orchestrator is built once from
``get_config()`` on first use and shared by every tool. Tests install their
own with :func:`set_orchestrator`.
"""

from __future__ import annotations

import logging

from .client import GeminiClient
from .config import get_config
from .orchestrator import SceneOrchestrator, build_orchestrator
from .store import SceneStore

logger = logging.getLogger(__name__)

_orchestrator: SceneOrchestrator | None = None
_client: GeminiClient | None = None
_store: SceneStore | None = None


def get_orchestrator() -> SceneOrchestrator:
    """Return the shared orchestrator, building it on first access."""
    global _orchestrator, _client, _store
    if _orchestrator is None:
        cfg = get_config()
        _client = GeminiClient(cfg)
        _store = SceneStore(cfg.db_path)
        _orchestrator = build_orchestrator(cfg, client=_client, store=_store)
        logger.info("Scene orchestrator ready (db=%s)", cfg.db_path)
    return _orchestrator


def set_orchestrator(orchestrator: SceneOrchestrator | None) -> None:
    """Install *orchestrator* (or clear it with ``None``)."""
    global _orchestrator, _client, _store
    _orchestrator = orchestrator
    _client = None
    _store = None


async def shutdown() -> int:
    """Close what :func:`get_orchestrator` opened. Returns the number of resources closed."""
    global _orchestrator, _client, _store
    closed = 0
    if _client is not None:
        await _client.close()
        closed += 1
    if _store is not None:
        _store.close()
        closed += 1
    _orchestrator = _client = _store = None
    return closed
