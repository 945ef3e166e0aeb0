"""Draft sharing, listing and access check endpoints."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from blog_api.core.config import Settings, get_settings
from blog_api.core.database import unit_of_work
from blog_api.core.dependencies import get_async_session, get_current_claims, get_user_context
from blog_api.core.identity import Authenticated, UserContext
from blog_api.schemas.common import Page, PaginationMeta, PaginationParams
from blog_api.schemas.draft import DraftAccessResponse, DraftAccessType, DraftSummary, ShareDraftRequest
from blog_api.services import draft_access_service
from blog_api.services.draft_access_service import DraftAccessDecision

router = APIRouter(prefix="/posts", tags=["drafts"])


@router.get("/drafts", response_model=Page[DraftSummary])
async def list_accessible_drafts(
    caller: Annotated[Authenticated, Depends(get_current_claims)],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    pagination: Annotated[PaginationParams, Depends()],
) -> Page[DraftSummary]:
    """List drafts the caller wrote, was shared on, or may read as a public draft."""
    async with unit_of_work(session, settings.store_timeout_seconds):
        posts, total = await draft_access_service.list_accessible_drafts(
            session,
            caller,
            page=pagination.page,
            page_size=pagination.page_size,
        )
        items = [DraftSummary.model_validate(post) for post in posts]
    return Page[DraftSummary](items=items, pagination=PaginationMeta.for_total(total, pagination))


@router.put("/{post_id}/share", response_model=DraftAccessResponse)
async def share_draft(
    post_id: uuid.UUID,
    request: ShareDraftRequest,
    caller: Annotated[Authenticated, Depends(get_current_claims)],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> DraftAccessResponse:
    """Set who may read a draft besides its author."""
    async with unit_of_work(session, settings.store_timeout_seconds):
        await draft_access_service.share_draft(
            session,
            post_id,
            caller.user_id,
            request.shared_with,
            request.is_public,
        )
    return DraftAccessResponse(post_id=post_id, allowed=True, decision=DraftAccessDecision.AUTHOR)


@router.get("/{post_id}/access", response_model=DraftAccessResponse)
async def check_access(
    post_id: uuid.UUID,
    context: Annotated[UserContext, Depends(get_user_context)],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    access_type: Annotated[DraftAccessType, Query()] = DraftAccessType.VIEW,
) -> DraftAccessResponse:
    """Report whether the caller may access a post, recording access gained through sharing."""
    async with unit_of_work(session, settings.store_timeout_seconds):
        post = await draft_access_service.get_post(session, post_id)
        decision = await draft_access_service.authorize_draft_access(session, post, context, access_type=access_type)
    return DraftAccessResponse(
        post_id=post_id,
        allowed=decision is not DraftAccessDecision.DENIED,
        decision=decision,
    )
