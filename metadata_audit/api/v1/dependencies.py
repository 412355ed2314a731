"""Reusable API dependencies shared across v1 routes."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from metadata_audit.services.metadata_audit import MetadataAuditEngine


@lru_cache
def get_audit_engine() -> MetadataAuditEngine:
    """Shared engine; its ruleset cache lives for the process."""
    return MetadataAuditEngine.from_settings()


AuditEngine = Annotated[MetadataAuditEngine, Depends(get_audit_engine)]
