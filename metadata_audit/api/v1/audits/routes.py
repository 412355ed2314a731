"""Metadata audit endpoints."""

import logging
from typing import Any

from fastapi import APIRouter

from metadata_audit.api.v1.dependencies import AuditEngine
from metadata_audit.schemas.metadata_audit import MetadataAuditRequest, RulesetResolveRequest
from metadata_audit.services.ruleset.types import RulesetContext

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/metadata",
    summary="Audit listing metadata",
    description="Score title, subtitle and description and return prioritized recommendations.",
)
def audit_metadata(request: MetadataAuditRequest, engine: AuditEngine) -> dict[str, Any]:
    """Run a metadata audit."""
    metadata = request.model_dump(exclude={"top_n"})
    result = engine.evaluate(metadata, top_n=request.top_n)
    return result.to_dict()


@router.post(
    "/rulesets/resolve",
    summary="Preview merged ruleset",
    description="Return inheritance chain, scope sources, KPI provenance and leak warnings for a context.",
)
def resolve_ruleset(request: RulesetResolveRequest, engine: AuditEngine) -> dict[str, Any]:
    """Resolve the merged ruleset for diagnostics."""
    context = RulesetContext(
        locale=request.locale,
        app_id=request.app_id,
        category=request.category,
        organization_id=request.organization_id,
        vertical=request.vertical,
    )
    ruleset = engine.resolver.resolve(context)
    logger.info(
        "Ruleset diagnostics requested",
        extra={"app_id": request.app_id, "category": request.category, "locale": request.locale},
    )
    return ruleset.to_diagnostics()
