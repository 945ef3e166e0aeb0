"""Identity core: users, RBAC, tokens, login attempts, post ACL columns, draft access log.

Seeds the default permissions and the admin, editor and author roles.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

import uuid
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# Frozen copy of the defaults at the time of this revision.
_PERMISSIONS = {
    "admin:role_management": "Create, delete and edit roles and permissions",
    "admin:user_management": "Assign roles to users",
    "admin:user_list": "List registered users",
    "admin:view_permissions": "View role and user permissions",
    "admin:view_statistics": "View site statistics and draft access logs",
    "category:create": "Create categories",
    "category:manage": "Edit, merge and delete categories",
    "tag:create": "Create tags",
    "tag:manage": "Edit, merge and delete tags",
    "post:create": "Create and edit own posts",
    "post:read_published": "Read published posts",
    "post:draft:access_shared": "Read drafts shared publicly with trusted users",
}

_ROLES = {
    "admin": list(_PERMISSIONS),
    "editor": [
        "category:create",
        "category:manage",
        "tag:create",
        "tag:manage",
        "post:create",
        "post:read_published",
        "post:draft:access_shared",
    ],
    "author": ["category:create", "tag:create", "post:create", "post:read_published"],
}


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("email_verified_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    permissions = op.create_table(
        "permissions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_permissions_name", "permissions", ["name"], unique=True)

    roles = op.create_table(
        "roles",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_roles_name", "roles", ["name"], unique=True)

    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("role_id", sa.Uuid(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    )
    role_permissions = op.create_table(
        "role_permissions",
        sa.Column("role_id", sa.Uuid(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
        sa.Column(
            "permission_id",
            sa.Uuid(),
            sa.ForeignKey("permissions.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    op.create_table(
        "refresh_tokens",
        sa.Column("token_hash", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_refresh_tokens_user_id", "refresh_tokens", ["user_id"])
    op.create_index("ix_refresh_tokens_expires_at", "refresh_tokens", ["expires_at"])

    op.create_table(
        "one_time_tokens",
        sa.Column("token_hash", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("token_type", sa.String(32), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_one_time_tokens_user_id", "one_time_tokens", ["user_id"])
    op.create_index("ix_one_time_tokens_expires_at", "one_time_tokens", ["expires_at"])

    op.create_table(
        "login_attempts",
        sa.Column("username", sa.String(100), primary_key=True),
        sa.Column("failure_count", sa.Integer, nullable=False),
        sa.Column("lockout_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "posts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("slug", sa.String(255), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("author_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("draft_shared_with", sa.JSON, nullable=False),
        sa.Column("is_draft_public", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_banned", sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_posts_slug", "posts", ["slug"], unique=True)
    op.create_index("ix_posts_author_id", "posts", ["author_id"])

    op.create_table(
        "draft_access_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("post_id", sa.Uuid(), nullable=False),
        sa.Column("accessed_by", sa.Uuid(), nullable=False),
        sa.Column("access_type", sa.String(20), nullable=False),
        sa.Column("access_reason", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_draft_access_logs_post_id", "draft_access_logs", ["post_id"])
    op.create_index("ix_draft_access_logs_accessed_by", "draft_access_logs", ["accessed_by"])
    op.create_index("ix_draft_access_logs_created_at", "draft_access_logs", ["created_at"])

    # Seed default roles and permissions
    permission_ids = {name: uuid.uuid4() for name in _PERMISSIONS}
    role_ids = {name: uuid.uuid4() for name in _ROLES}
    op.bulk_insert(
        permissions,
        [{"id": permission_ids[n], "name": n, "description": d} for n, d in _PERMISSIONS.items()],
    )
    op.bulk_insert(
        roles,
        [{"id": role_ids[n], "name": n, "description": f"Default {n} role"} for n in _ROLES],
    )
    op.bulk_insert(
        role_permissions,
        [
            {"role_id": role_ids[role], "permission_id": permission_ids[perm]}
            for role, perms in _ROLES.items()
            for perm in perms
        ],
    )


def downgrade() -> None:
    op.drop_table("draft_access_logs")
    op.drop_table("posts")
    op.drop_table("login_attempts")
    op.drop_table("one_time_tokens")
    op.drop_table("refresh_tokens")
    op.drop_table("role_permissions")
    op.drop_table("user_roles")
    op.drop_table("roles")
    op.drop_table("permissions")
    op.drop_table("users")
