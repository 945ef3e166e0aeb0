"""Per-post draft access control and the draft access audit trail.

Published posts are readable by everyone unless banned. Drafts are
readable by their author, by users the author shared them with, and,
when the author marked the draft public, by holders of the
shared-draft permission. Access granted through sharing is recorded.
"""

import enum
import uuid

from loguru import logger
from sqlalchemy import String, and_, cast, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from blog_api.core.errors import ForbiddenError, NotFoundError, ValidationError
from blog_api.core.identity import VIEW_SHARED_DRAFTS, Authenticated, Guest, UserContext, has_permission
from blog_api.models.draft_access_log import DraftAccessLog
from blog_api.models.post import Post
from blog_api.models.user import User
from blog_api.schemas.draft import DraftAccessType


class DraftAccessDecision(enum.StrEnum):
    """Which rule granted or denied access to a post."""

    PUBLISHED = "published"
    AUTHOR = "author"
    SHARED = "shared"
    PUBLIC_DRAFT = "public_draft"
    DENIED = "denied"


_AUDITED = frozenset({DraftAccessDecision.SHARED, DraftAccessDecision.PUBLIC_DRAFT})


def evaluate_draft_access(post: Post, context: UserContext) -> DraftAccessDecision:
    """Decide whether the caller may read a post. Pure; no I/O.

    Args:
        post: The post being accessed.
        context: The caller.

    Returns:
        The rule that applied.
    """
    match context:
        case Guest():
            user_id = None
        case Authenticated():
            user_id = context.user_id

    is_author = user_id is not None and post.author_id == user_id

    if not post.is_draft:
        if not post.is_banned:
            return DraftAccessDecision.PUBLISHED
        return DraftAccessDecision.AUTHOR if is_author else DraftAccessDecision.DENIED

    if user_id is None:
        return DraftAccessDecision.DENIED
    if is_author:
        return DraftAccessDecision.AUTHOR
    if str(user_id) in (post.draft_shared_with or []):
        return DraftAccessDecision.SHARED
    if post.is_draft_public and has_permission(context, VIEW_SHARED_DRAFTS):
        return DraftAccessDecision.PUBLIC_DRAFT
    return DraftAccessDecision.DENIED


async def authorize_draft_access(
    session: AsyncSession,
    post: Post,
    context: UserContext,
    *,
    access_type: DraftAccessType = DraftAccessType.VIEW,
    reason: str | None = None,
) -> DraftAccessDecision:
    """Decide access to a post and record access granted through sharing.

    A ``DraftAccessLog`` row is added (flushed, not committed) whenever a
    non-author reaches a draft through the share list or the public flag.

    Args:
        session: The database session.
        post: The post being accessed.
        context: The caller.
        access_type: The operation being attempted.
        reason: Optional free-text reason stored with the audit record.

    Returns:
        The rule that applied; ``DENIED`` when access is refused.
    """
    decision = evaluate_draft_access(post, context)
    if decision is DraftAccessDecision.DENIED:
        logger.info(f"Draft access denied on post {post.id} for {_describe(context)}")
        return decision

    if decision in _AUDITED and isinstance(context, Authenticated):
        session.add(
            DraftAccessLog(
                post_id=post.id,
                accessed_by=context.user_id,
                access_type=access_type.value,
                access_reason=reason or decision.value,
            )
        )
        await session.flush()
        logger.info(f"User {context.username} accessed draft {post.id} via {decision.value} ({access_type.value})")
    return decision


async def can_access_draft(
    session: AsyncSession,
    post: Post,
    context: UserContext,
    *,
    access_type: DraftAccessType = DraftAccessType.VIEW,
    reason: str | None = None,
) -> bool:
    """Boolean form of ``authorize_draft_access``, with the same audit side effect."""
    decision = await authorize_draft_access(session, post, context, access_type=access_type, reason=reason)
    return decision is not DraftAccessDecision.DENIED


async def get_post(session: AsyncSession, post_id: uuid.UUID) -> Post:
    """Fetch a post by ID.

    Raises:
        NotFoundError: If no such post exists.
    """
    post = await session.get(Post, post_id)
    if post is None:
        msg = f"Post {post_id} not found"
        raise NotFoundError(msg)
    return post


async def share_draft(
    session: AsyncSession,
    post_id: uuid.UUID,
    owner_id: uuid.UUID,
    shared_with: list[uuid.UUID],
    is_public: bool,
) -> Post:
    """Replace a draft's share list and public flag.

    Raises:
        NotFoundError: If the post or any target user does not exist.
        ForbiddenError: If the caller is not the post's author.
        ValidationError: If the post is already published, or shared with its own author.
    """
    post = await get_post(session, post_id)
    if post.author_id != owner_id:
        logger.warning(f"User {owner_id} tried to share post {post_id} they do not own")
        msg = "Only the author can share a draft"
        raise ForbiddenError(msg)
    if not post.is_draft:
        msg = "Only drafts can be shared"
        raise ValidationError(msg)

    targets = list(dict.fromkeys(shared_with))
    if owner_id in targets:
        msg = "A draft cannot be shared with its own author"
        raise ValidationError(msg)
    if targets:
        found = await session.execute(select(User.id).where(User.id.in_(targets)))
        missing = set(targets) - set(found.scalars().all())
        if missing:
            msg = f"Unknown user IDs: {', '.join(sorted(str(m) for m in missing))}"
            raise NotFoundError(msg)

    post.draft_shared_with = [str(t) for t in targets]
    post.is_draft_public = is_public
    await session.flush()
    logger.info(f"Draft {post_id} shared with {len(targets)} user(s), public={is_public}")
    return post


async def list_accessible_drafts(
    session: AsyncSession,
    caller: Authenticated,
    *,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[Post], int]:
    """List the drafts a user may read, most recently updated first.

    Covers the caller's own drafts, drafts shared with them, and public
    drafts when the caller holds the shared-draft permission. Listing is not
    audited; reading an individual draft is.

    Returns:
        Tuple of (posts, total count).
    """
    # Share lists hold quoted UUID strings, so a quoted match on the JSON text is exact.
    shared_with_caller = cast(Post.draft_shared_with, String).contains(f'"{caller.user_id}"')
    visible = or_(Post.author_id == caller.user_id, shared_with_caller)
    if has_permission(caller, VIEW_SHARED_DRAFTS):
        visible = or_(visible, Post.is_draft_public.is_(True))
    condition = and_(Post.published_at.is_(None), visible)

    total = (await session.execute(select(func.count(Post.id)).where(condition))).scalar_one()
    offset = (page - 1) * page_size
    result = await session.execute(
        select(Post).where(condition).order_by(Post.updated_at.desc()).offset(offset).limit(page_size)
    )
    return list(result.scalars().all()), total


async def query_access_logs(
    session: AsyncSession,
    *,
    post_id: uuid.UUID | None = None,
    accessed_by: uuid.UUID | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[DraftAccessLog], int]:
    """Query draft access records, newest first.

    Args:
        session: The database session.
        post_id: Filter by post.
        accessed_by: Filter by accessing user.
        page: Page number (1-based).
        page_size: Items per page.

    Returns:
        Tuple of (access log records, total count).
    """
    query = select(DraftAccessLog)
    count_query = select(func.count(DraftAccessLog.id))

    if post_id is not None:
        query = query.where(DraftAccessLog.post_id == post_id)
        count_query = count_query.where(DraftAccessLog.post_id == post_id)
    if accessed_by is not None:
        query = query.where(DraftAccessLog.accessed_by == accessed_by)
        count_query = count_query.where(DraftAccessLog.accessed_by == accessed_by)

    total = (await session.execute(count_query)).scalar_one()

    offset = (page - 1) * page_size
    query = query.order_by(DraftAccessLog.created_at.desc()).offset(offset).limit(page_size)
    result = await session.execute(query)
    logs = list(result.scalars().all())

    return logs, total


def _describe(context: UserContext) -> str:
    match context:
        case Guest():
            return "guest"
        case Authenticated():
            return f"user {context.username}"
