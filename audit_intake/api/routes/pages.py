"""HTML landing page with the upload form."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse

from audit_intake.api.deps import get_catalog, templates
from audit_intake.core.config import Settings, get_settings
from audit_intake.services.catalog import VulnerabilityCatalog
from audit_intake.services.targets import TARGETS

router = APIRouter()


@router.get("/", response_class=HTMLResponse)
def index(
    request: Request,
    catalog: Annotated[VulnerabilityCatalog, Depends(get_catalog)],
    cfg: Annotated[Settings, Depends(get_settings)],
) -> HTMLResponse:
    """Upload form plus the list of accepted vulnerability names."""
    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "vulnerabilities": catalog.titles,
            "targets": list(TARGETS),
            "max_upload_mb": cfg.MAX_UPLOAD_MB,
            "match_policy": cfg.TITLE_MATCH_POLICY,
        },
    )
