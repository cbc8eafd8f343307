"""Job queue backends with lazy loading.

Usage:
    from pricehound.queue import create_queue

    queue = create_queue(settings.queue)
    job = await queue.fetch_oldest_pending_job()
"""

from __future__ import annotations

import importlib

from pricehound.core.config import QueueConfig
from pricehound.queue.base import JobQueue

__all__ = ["JobQueue", "available_backends", "create_queue"]

# Lazy registry: maps backend name → (module_path, class_name, factory)
_REGISTRY: dict[str, tuple[str, str, str]] = {
    "sqlite": ("pricehound.queue.sqlite_queue", "SqliteJobQueue", "open"),
    "supabase": ("pricehound.queue.supabase_queue", "SupabaseJobQueue", "from_config"),
}


def create_queue(config: QueueConfig) -> JobQueue:
    """Instantiate the queue backend named in the config.

    Raises:
        ValueError: If the backend is unknown or its credentials are missing.
        QueueIOError: If the local store cannot be opened.
    """
    if config.backend not in _REGISTRY:
        valid = ", ".join(sorted(_REGISTRY))
        msg = f"Unknown queue backend '{config.backend}'. Available: {valid}"
        raise ValueError(msg)

    module_path, class_name, factory = _REGISTRY[config.backend]
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)
    if config.backend == "sqlite":
        return getattr(cls, factory)(config.path)  # type: ignore[no-any-return]
    return getattr(cls, factory)(config)  # type: ignore[no-any-return]


def available_backends() -> list[str]:
    """Return sorted list of registered backend names."""
    return sorted(_REGISTRY)
