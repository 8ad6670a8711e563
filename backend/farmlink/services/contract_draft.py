"""Contract templates and farmer drafts.

A draft holds free-form contract terms until the farmer submits it, at which
point the terms must validate as a regular contract.
"""

import logging
from datetime import datetime, timezone

from pydantic import ValidationError
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.api.schemas import ContractCreate, DraftCreate, DraftUpdate, TemplateCreate
from farmlink.core.errors import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    SelfDealingError,
)
from farmlink.models.contract import Contract
from farmlink.models.contract_draft import ContractDraft, ContractTemplate
from farmlink.models.profile import Profile
from farmlink.services import contract as contract_svc
from farmlink.services.profile import get_profile_by_id

logger = logging.getLogger(__name__)

DRAFT = "draft"
SUBMITTED = "submitted"


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


async def list_templates(db: AsyncSession) -> list[ContractTemplate]:
    result = await db.execute(
        select(ContractTemplate).order_by(
            ContractTemplate.is_default.desc(),
            ContractTemplate.created_at.desc(),
            ContractTemplate.id.desc(),
        )
    )
    return list(result.scalars().all())


async def create_template(db: AsyncSession, user_id: int, data: TemplateCreate) -> ContractTemplate:
    if not data.name or not data.template_fields:
        raise InvalidStateError("name and template_fields are required")

    template = ContractTemplate(
        name=data.name,
        description=data.description,
        template_fields=data.template_fields,
        created_by=user_id,
        is_default=False,
    )
    db.add(template)
    await db.commit()
    await db.refresh(template)
    logger.info("Contract template %s created by profile %s", template.id, user_id)
    return template


# ---------------------------------------------------------------------------
# Drafts
# ---------------------------------------------------------------------------


async def _check_buyer(db: AsyncSession, farmer_id: int, buyer_id: int | None) -> None:
    if buyer_id is None:
        return
    if buyer_id == farmer_id:
        raise SelfDealingError("A contract needs two different parties")
    if await get_profile_by_id(db, buyer_id) is None:
        raise NotFoundError("Buyer not found")


async def _load_draft(db: AsyncSession, draft_id: int) -> ContractDraft:
    result = await db.execute(
        select(ContractDraft)
        .where(ContractDraft.id == draft_id)
        .execution_options(populate_existing=True)
    )
    draft = result.scalar_one_or_none()
    if draft is None:
        raise NotFoundError("Draft not found")
    return draft


async def list_drafts(db: AsyncSession, user_id: int) -> list[ContractDraft]:
    result = await db.execute(
        select(ContractDraft)
        .where(or_(ContractDraft.farmer_id == user_id, ContractDraft.buyer_id == user_id))
        .order_by(ContractDraft.updated_at.desc(), ContractDraft.id.desc())
    )
    return list(result.scalars().all())


async def create_draft(db: AsyncSession, farmer: Profile, data: DraftCreate) -> ContractDraft:
    if farmer.user_type != "farmer":
        raise ForbiddenError("Only farmers can create contract drafts")
    await _check_buyer(db, farmer.id, data.buyer_id)
    if data.template_id is not None and await db.get(ContractTemplate, data.template_id) is None:
        raise NotFoundError("Template not found")

    draft = ContractDraft(
        template_id=data.template_id,
        farmer_id=farmer.id,
        buyer_id=data.buyer_id,
        contract_data=data.contract_data,
        status=DRAFT,
    )
    db.add(draft)
    await db.commit()

    logger.info("Draft %s created by farmer %s", draft.id, farmer.id)
    return await _load_draft(db, draft.id)


async def get_draft(db: AsyncSession, draft_id: int, user_id: int) -> ContractDraft:
    draft = await _load_draft(db, draft_id)
    if user_id not in (draft.farmer_id, draft.buyer_id):
        raise ForbiddenError("Access denied")
    return draft


async def _get_editable_draft(db: AsyncSession, draft_id: int, user_id: int) -> ContractDraft:
    draft = await get_draft(db, draft_id, user_id)
    if draft.farmer_id != user_id:
        raise ForbiddenError("Only the drafting farmer can change this draft")
    if draft.status != DRAFT:
        raise InvalidStateError("Draft has already been submitted")
    return draft


async def update_draft(
    db: AsyncSession, draft_id: int, user_id: int, data: DraftUpdate,
) -> ContractDraft:
    draft = await _get_editable_draft(db, draft_id, user_id)
    if "buyer_id" in data.model_fields_set:
        await _check_buyer(db, user_id, data.buyer_id)
        draft.buyer_id = data.buyer_id
    if data.contract_data is not None:
        draft.contract_data = data.contract_data
    await db.commit()
    return await _load_draft(db, draft.id)


def _contract_payload(draft: ContractDraft) -> ContractCreate:
    try:
        return ContractCreate.model_validate({**draft.contract_data, "buyer_id": draft.buyer_id})
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise InvalidStateError(f"Draft is incomplete: {field}: {first['msg']}") from exc


async def submit_draft(db: AsyncSession, draft_id: int, farmer: Profile) -> tuple[ContractDraft, Contract]:
    """Turn a draft into a pending contract.

    The draft is claimed before the contract is written, so a second
    submission of the same draft fails instead of creating a duplicate.
    """
    draft = await _get_editable_draft(db, draft_id, farmer.id)
    payload = _contract_payload(draft)

    result = await db.execute(
        update(ContractDraft)
        .where(ContractDraft.id == draft_id, ContractDraft.status == DRAFT)
        .values(status=SUBMITTED, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise InvalidStateError("Draft has already been submitted")

    # commits the claimed draft together with the contract
    contract = await contract_svc.create_contract(db, farmer, payload)

    await db.execute(
        update(ContractDraft)
        .where(ContractDraft.id == draft_id)
        .values(contract_id=contract.id)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    logger.info("Draft %s submitted as contract %s", draft_id, contract.id)
    return await _load_draft(db, draft_id), contract
