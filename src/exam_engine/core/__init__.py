"""Core attempt engine logic.

Modules:
- models: Test series, question and attempt dataclasses
- pool_selector: Bound question set selection
- progress_store: Incremental saves with optimistic concurrency
- grader: Exact-set grading
- integrity: Anti-cheating monitor
- analytics: Post-submission analytics
- engine: AttemptEngine orchestrator
"""

__all__ = [
    "models",
    "pool_selector",
    "progress_store",
    "grader",
    "integrity",
    "analytics",
    "engine",
]
