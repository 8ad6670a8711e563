"""Contract drafts and templates.

Registered ahead of the contracts router so ``/contracts/drafts`` and
``/contracts/templates`` are not read as contract ids.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.api.schemas import (
    DraftCreate,
    DraftListResponse,
    DraftResponse,
    DraftSubmitResponse,
    DraftUpdate,
    TemplateCreate,
    TemplateListResponse,
    TemplateResponse,
)
from farmlink.core.deps import get_db
from farmlink.core.security import get_current_user
from farmlink.models.profile import Profile
from farmlink.services import contract_draft as draft_svc

router = APIRouter(prefix="/contracts", tags=["drafts"])


@router.get("/templates", response_model=TemplateListResponse)
async def list_templates(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return TemplateListResponse(templates=await draft_svc.list_templates(db))


@router.post("/templates", response_model=TemplateResponse, status_code=201)
async def create_template(
    body: TemplateCreate,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await draft_svc.create_template(db, user.id, body)


@router.get("/drafts", response_model=DraftListResponse)
async def list_drafts(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return DraftListResponse(drafts=await draft_svc.list_drafts(db, user.id))


@router.post("/drafts", response_model=DraftResponse, status_code=201)
async def create_draft(
    body: DraftCreate,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await draft_svc.create_draft(db, user, body)


@router.get("/drafts/{draft_id}", response_model=DraftResponse)
async def get_draft(
    draft_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await draft_svc.get_draft(db, draft_id, user.id)


@router.put("/drafts/{draft_id}", response_model=DraftResponse)
async def update_draft(
    draft_id: int,
    body: DraftUpdate,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await draft_svc.update_draft(db, draft_id, user.id, body)


@router.post("/drafts/{draft_id}/submit", response_model=DraftSubmitResponse, status_code=201)
async def submit_draft(
    draft_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    draft, contract = await draft_svc.submit_draft(db, draft_id, user)
    return DraftSubmitResponse(draft=draft, contract=contract)
