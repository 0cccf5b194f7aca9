"""Shared AttemptEngine instance for the API."""

from __future__ import annotations

from exam_engine.core.engine import AttemptEngine

_engine: AttemptEngine | None = None


def get_engine() -> AttemptEngine:
    """Get the global attempt engine instance."""
    global _engine
    if _engine is None:
        _engine = AttemptEngine()
    return _engine


def set_engine(engine: AttemptEngine) -> None:
    """Install a specific engine (tests, custom wiring)."""
    global _engine
    _engine = engine


def reset_engine() -> None:
    """Reset the engine (for testing)."""
    global _engine
    _engine = None
