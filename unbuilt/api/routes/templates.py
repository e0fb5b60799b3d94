"""Plan templates. Anyone signed in can read them; admins manage them."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response

from unbuilt.api.deps import parse_uuid
from unbuilt.api.schemas import TemplateCreate, TemplateResponse, TemplateUpdate, template_to_response
from unbuilt.core.auth import AuthContext, get_current_auth, require_admin
from unbuilt.core.database import get_db
from unbuilt.services import TemplateService

router = APIRouter(prefix="/api/templates", tags=["templates"])


@router.get("", response_model=List[TemplateResponse])
async def list_templates(category: Optional[str] = None, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        return [template_to_response(t) for t in TemplateService(db).list_templates(category)]


@router.get("/default", response_model=TemplateResponse)
async def default_template(auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        template = TemplateService(db).get_default_template()
        if not template:
            raise HTTPException(status_code=404, detail="No default template configured")
        return template_to_response(template)


@router.get("/{template_id}", response_model=TemplateResponse)
async def get_template(template_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        return template_to_response(TemplateService(db).get_template(parse_uuid(template_id, "template")))


@router.get("/{template_id}/stats")
async def template_stats(template_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        return TemplateService(db).get_usage_stats(parse_uuid(template_id, "template"))


@router.post("", response_model=TemplateResponse, status_code=201)
async def create_template(body: TemplateCreate, auth: AuthContext = Depends(require_admin)):
    with get_db() as db:
        return template_to_response(TemplateService(db).create_template(body.model_dump()))


@router.patch("/{template_id}", response_model=TemplateResponse)
async def update_template(template_id: str, body: TemplateUpdate, auth: AuthContext = Depends(require_admin)):
    with get_db() as db:
        template = TemplateService(db).update_template(
            parse_uuid(template_id, "template"), body.model_dump(exclude_unset=True),
        )
        return template_to_response(template)


@router.delete("/{template_id}", status_code=204)
async def delete_template(template_id: str, auth: AuthContext = Depends(require_admin)):
    with get_db() as db:
        TemplateService(db).delete_template(parse_uuid(template_id, "template"))
    return Response(status_code=204)
