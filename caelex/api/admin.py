from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, page_meta
from ..auth.jwt import require_roles
from ..core.request_context import RequestContext
from ..schemas.schemas import AdminOrganizationUpdate, OrganizationRead
from ..services import organizations as organization_service

router = APIRouter()

require_admin = require_roles("admin")


@router.get("/organizations")
def list_organizations(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _: RequestContext = Depends(require_admin),
) -> dict:
    rows, total = organization_service.list_all_organizations(db, limit=limit, offset=offset)
    meta = page_meta(total, limit, offset)
    return {
        "organizations": [
            {
                **OrganizationRead.model_validate(row["organization"]).model_dump(mode="json", by_alias=True),
                "memberCount": row["member_count"],
            }
            for row in rows
        ],
        "total": meta["total"],
        "limit": meta["limit"],
        "offset": meta["offset"],
        "hasMore": meta["has_more"],
    }


@router.patch("/organizations/{org_id}", response_model=OrganizationRead)
def update_organization(
    org_id: str,
    payload: AdminOrganizationUpdate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(require_admin),
):
    organization = organization_service.admin_update_organization(
        db,
        org_id,
        ctx.user_id,
        plan=payload.plan,
        is_active=payload.is_active,
        max_users=payload.max_users,
    )
    db.commit()
    db.refresh(organization)
    return organization
