"""
Bluhatch Core Module

This module contains the core business logic for Bluhatch including:
- Content hashing and blob storage for evidence artifacts
- External timestamp submission and verification
- Protection scoring and dispute protection reports
- Owner-scoped job and evidence persistence

The core module is framework-agnostic apart from the FastAPI error handlers
and request logging middleware, and can be driven directly with an
``AsyncSession``.

Example usage:
    from core.hashing import compute_digest
    from core.scoring import calculate_protection_score
    from core.evidence import create_evidence_from_upload
"""

__version__ = "0.1.0"
__all__ = [
    "blob_store",
    "config",
    "db",
    "errors",
    "evidence",
    "hashing",
    "jobs",
    "logging",
    "models",
    "models_sql",
    "report",
    "scoring",
    "timestamp",
]
