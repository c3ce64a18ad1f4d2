"""Persistence subsystem exports."""

from persistence.enrichment_cache import EnrichmentCache, enrichment_fingerprint
from persistence.resume import ResumeStateManager, default_state_path, load_resume_state

__all__ = [
    "EnrichmentCache",
    "ResumeStateManager",
    "default_state_path",
    "enrichment_fingerprint",
    "load_resume_state",
]
