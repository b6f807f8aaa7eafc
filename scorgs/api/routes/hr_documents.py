"""
scorgs.api.routes.hr_documents — HR documents, versions & acknowledgments
==========================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from scorgs.api.deps import get_config, get_current_user, get_engine, get_member_org, get_org
from scorgs.api.rate_limit import rate_limited_user
from scorgs.config import ScorgsConfig
from scorgs.database.models import Organization
from scorgs.services import hr_document_service
from scorgs.services.markdown import validate_markdown

router = APIRouter(prefix="/organizations", tags=["hr-documents"])


class ContentCheck(BaseModel):
    content: str


class DocumentCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    content: str
    description: str | None = None
    folder_path: str = "/"
    requires_acknowledgment: bool = False
    access_roles: list[str] | None = None


class DocumentUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    content: str | None = None
    description: str | None = None
    folder_path: str | None = None
    requires_acknowledgment: bool | None = None
    access_roles: list[str] | None = None


def _document_in_org(engine, org: Organization, document_id: str, user_id: str) -> dict:
    document = hr_document_service.get_document(engine, document_id, user_id)
    if document["organization_id"] != org.id:
        raise HTTPException(404, "Document not found")
    return document


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------
@router.post("/{rsi_org_id}/documents/validate")
def validate_content(body: ContentCheck, org: Organization = Depends(get_member_org)):
    return validate_markdown(body.content).to_json()


@router.get("/{rsi_org_id}/documents")
def list_documents(
    folder: str | None = None,
    search: str | None = Query(None, max_length=100),
    org: Organization = Depends(get_org),
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return {
        "documents": hr_document_service.list_documents(
            engine, org.id, user["sub"], folder=folder, search=search,
        )
    }


@router.get("/{rsi_org_id}/documents/pending-acknowledgments")
def pending_acknowledgments(
    org: Organization = Depends(get_org),
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return {"documents": hr_document_service.pending_acknowledgments(engine, org.id, user["sub"])}


@router.post("/{rsi_org_id}/documents", status_code=201)
def create_document(
    body: DocumentCreate,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return hr_document_service.create_document(engine, org.id, user["sub"], **body.model_dump())


@router.get("/{rsi_org_id}/documents/{document_id}")
def get_document(
    document_id: str,
    org: Organization = Depends(get_org),
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return _document_in_org(engine, org, document_id, user["sub"])


@router.put("/{rsi_org_id}/documents/{document_id}")
def update_document(
    document_id: str,
    body: DocumentUpdate,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
    cfg: ScorgsConfig = Depends(get_config),
):
    updates = body.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(400, "No fields to update")
    _document_in_org(engine, org, document_id, user["sub"])
    return hr_document_service.update_document(
        engine, document_id, user["sub"], updates,
        reacknowledgment_threshold=cfg.reacknowledgment_threshold,
    )


@router.delete("/{rsi_org_id}/documents/{document_id}", status_code=204)
def delete_document(
    document_id: str,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    _document_in_org(engine, org, document_id, user["sub"])
    hr_document_service.delete_document(engine, document_id, user["sub"])
    return None


# ---------------------------------------------------------------------------
# Versions
# ---------------------------------------------------------------------------
@router.get("/{rsi_org_id}/documents/{document_id}/versions")
def list_versions(
    document_id: str,
    org: Organization = Depends(get_org),
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    _document_in_org(engine, org, document_id, user["sub"])
    return {"versions": hr_document_service.list_versions(engine, document_id, user["sub"])}


@router.get("/{rsi_org_id}/documents/{document_id}/versions/compare")
def compare_versions(
    document_id: str,
    from_version: int = Query(..., alias="from", ge=1),
    to_version: int = Query(..., alias="to", ge=1),
    org: Organization = Depends(get_org),
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    _document_in_org(engine, org, document_id, user["sub"])
    return hr_document_service.compare_document_versions(
        engine, document_id, from_version, to_version, user["sub"],
    )


@router.get("/{rsi_org_id}/documents/{document_id}/versions/stats")
def version_stats(
    document_id: str,
    org: Organization = Depends(get_org),
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    _document_in_org(engine, org, document_id, user["sub"])
    return hr_document_service.document_version_statistics(engine, document_id, user["sub"])


@router.get("/{rsi_org_id}/documents/{document_id}/versions/{version_number}")
def get_version(
    document_id: str,
    version_number: int,
    org: Organization = Depends(get_org),
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    _document_in_org(engine, org, document_id, user["sub"])
    return hr_document_service.get_version(engine, document_id, version_number, user["sub"])


# ---------------------------------------------------------------------------
# Acknowledgments
# ---------------------------------------------------------------------------
@router.post("/{rsi_org_id}/documents/{document_id}/acknowledge", status_code=201)
def acknowledge(
    document_id: str,
    request: Request,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    _document_in_org(engine, org, document_id, user["sub"])
    ip_address = request.client.host if request.client else None
    return hr_document_service.acknowledge_document(
        engine, document_id, user["sub"], ip_address=ip_address,
    )


@router.get("/{rsi_org_id}/documents/{document_id}/acknowledgments")
def acknowledgment_status(
    document_id: str,
    org: Organization = Depends(get_org),
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    _document_in_org(engine, org, document_id, user["sub"])
    return hr_document_service.acknowledgment_status(engine, document_id, user["sub"])
