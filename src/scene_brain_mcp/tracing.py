"""Optional MLflow tracing for the generation pipeline.

Each request produces one trace: the ``scene_generate`` tool span parents
the context, decision and dispatch spans, and Gemini autologging adds the
model calls underneath. ``tag_request`` attaches the project and the chosen
operation so traces can be filtered by them.

``mlflow-tracing`` is an optional extra. Without it, or with
``SCENE_TRACING_ENABLED=false``, every helper here is a no-op.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from .config import ServerConfig, get_config

logger = logging.getLogger(__name__)

try:
    import mlflow
    import mlflow.gemini

    _HAS_MLFLOW = True
except ImportError:
    _HAS_MLFLOW = False


def is_enabled(config: ServerConfig | None = None) -> bool:
    """True when mlflow-tracing is importable and *config* turns tracing on."""
    if not _HAS_MLFLOW:
        return False
    return (config or get_config()).tracing_enabled


def trace(
    func: Callable | None = None,
    *,
    name: str | None = None,
    span_type: str | None = None,
    attributes: dict[str, Any] | None = None,
) -> Callable:
    """``@mlflow.trace`` when tracing is on, the identity otherwise.

    Decided once, when the decorated module is imported.
    """
    if not is_enabled():
        return func if func is not None else (lambda f: f)
    return mlflow.trace(func, name=name, span_type=span_type, attributes=attributes)


def tag_request(**tags: Any) -> None:
    """Attach string tags to the active trace; ``None`` values are skipped."""
    if not is_enabled():
        return
    clean = {k: str(v) for k, v in tags.items() if v is not None}
    if not clean:
        return
    try:
        mlflow.update_current_trace(tags=clean)
    except Exception:
        logger.debug("Could not tag trace with %s", sorted(clean), exc_info=True)


def setup(config: ServerConfig | None = None) -> None:
    """Point MLflow at the tracking server and turn on Gemini autologging.

    A failure here is logged and the server starts without tracing.
    """
    cfg = config or get_config()
    if not is_enabled(cfg):
        return
    try:
        mlflow.set_tracking_uri(cfg.mlflow_tracking_uri)
        mlflow.set_experiment(cfg.mlflow_experiment_name)
        mlflow.gemini.autolog()
    except Exception:
        logger.warning("MLflow tracing setup failed, continuing without tracing", exc_info=True)
        return
    logger.info(
        "MLflow tracing enabled (uri=%s, experiment=%s)",
        cfg.mlflow_tracking_uri, cfg.mlflow_experiment_name,
    )


def shutdown(config: ServerConfig | None = None) -> None:
    """Flush traces still queued for async export."""
    if not is_enabled(config):
        return
    try:
        mlflow.flush_trace_async_logging()
    except Exception:
        logger.warning("MLflow trace flush failed", exc_info=True)
