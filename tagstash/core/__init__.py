"""Core image-store logic.

- tagstash.core.retrieval: Reconciler, ResolveMode, ResolveOutcome
- tagstash.core.ingestion: IngestionPipeline, StagedFile, IngestItem
- tagstash.core.cleanup: purge_image, CleanupOutcome

Pure helpers live in tagstash.analysis (re-encoding, tags, naming).
"""

from typing import Any

_EXPORTS = {
    "Reconciler": "retrieval",
    "ResolveMode": "retrieval",
    "ResolveOutcome": "retrieval",
    "RANDOM_MAX_ATTEMPTS": "retrieval",
    "IngestionPipeline": "ingestion",
    "IngestItem": "ingestion",
    "StagedFile": "ingestion",
    "purge_image": "cleanup",
    "CleanupOutcome": "cleanup",
}


def __getattr__(name: str) -> Any:
    """Lazy imports so importing one core module does not pull in the others."""
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    from importlib import import_module

    return getattr(import_module(f"{__name__}.{module_name}"), name)
