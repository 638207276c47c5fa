"""001 initial schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

Creates the credential tables (users, backup codes, verification tokens,
sessions, OAuth links), the media tables (videos, transcripts, subtitles,
processing tasks) and the YouTube publishing tables.
"""

from typing import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

token_purpose = postgresql.ENUM("email_otp", "two_factor_ticket", name="tokenpurpose")
video_task_status = postgresql.ENUM(
    "NOT_STARTED",
    "TRANSCRIBING",
    "CAPTIONING",
    "TRANSCODING",
    "COMPLETED",
    "FAILED",
    name="videotaskstatus",
)
upload_status = postgresql.ENUM("PUBLISHED", "FAILED", name="uploadstatus")


def _uuid_pk() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def _user_fk() -> sa.Column:
    return sa.Column(
        "user_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )


def _video_fk(name: str = "video_id", unique: bool = False) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("video_files.id", ondelete="CASCADE"),
        nullable=False,
        unique=unique,
    )


def upgrade() -> None:
    """Create all tables, enums and indexes."""
    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("email_verified", sa.DateTime(timezone=True), nullable=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("image", sa.Text(), nullable=True),
        sa.Column("phone_number", sa.String(32), nullable=True),
        sa.Column("role", sa.String(20), server_default="user", nullable=False),
        sa.Column("two_factor_enabled", sa.Boolean(), server_default="0", nullable=False),
        sa.Column("two_factor_secret_encrypted", sa.LargeBinary(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "(two_factor_enabled = true AND two_factor_secret_encrypted IS NOT NULL) OR "
            "(two_factor_enabled = false AND two_factor_secret_encrypted IS NULL)",
            name="ck_users_two_factor_secret",
        ),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "backup_codes",
        _uuid_pk(),
        _user_fk(),
        sa.Column("code_hash", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "code_hash", name="uq_backup_codes_user_code"),
    )
    op.create_index("ix_backup_codes_user_id", "backup_codes", ["user_id"])

    op.create_table(
        "verification_tokens",
        _uuid_pk(),
        sa.Column("identifier", sa.String(320), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("purpose", token_purpose, nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_verification_tokens_identifier_purpose",
        "verification_tokens",
        ["identifier", "purpose"],
    )

    op.create_table(
        "auth_sessions",
        _uuid_pk(),
        sa.Column("token_hash", sa.String(64), nullable=False, unique=True),
        _user_fk(),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_auth_sessions_user_id", "auth_sessions", ["user_id"])

    op.create_table(
        "oauth_accounts",
        _uuid_pk(),
        _user_fk(),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("provider_account_id", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("provider", "provider_account_id", name="uq_oauth_provider_account"),
    )
    op.create_index("ix_oauth_accounts_user_id", "oauth_accounts", ["user_id"])

    op.create_table(
        "video_files",
        _uuid_pk(),
        _user_fk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("file_key", sa.String(512), nullable=False),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("thumbnail_key", sa.String(512), nullable=True),
        sa.Column("is_uploaded", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_video_files_user_id", "video_files", ["user_id"])

    op.create_table(
        "transcripts",
        _uuid_pk(),
        _video_fk(unique=True),
        sa.Column("file_key", sa.String(512), nullable=True),
        sa.Column("raw_text", sa.Text(), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.Column("language", sa.String(16), nullable=True),
        sa.Column("word_count", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "subtitles",
        _uuid_pk(),
        _video_fk(),
        sa.Column("format", sa.String(10), nullable=False),
        sa.Column("file_key", sa.String(512), nullable=True),
        sa.Column("raw_text", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("video_id", "format", name="uq_subtitles_video_format"),
        sa.CheckConstraint("format IN ('webvtt', 'srt')", name="ck_subtitles_format"),
    )
    op.create_index("ix_subtitles_video_id", "subtitles", ["video_id"])

    op.create_table(
        "video_tasks",
        _uuid_pk(),
        _video_fk(unique=True),
        sa.Column("status", video_task_status, nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_video_tasks_status", "video_tasks", ["status"])

    op.create_table(
        "youtube_integrations",
        _uuid_pk(),
        _user_fk(),
        sa.Column("channel_id", sa.String(64), nullable=False),
        sa.Column("channel_title", sa.String(255), nullable=True),
        sa.Column("access_token_encrypted", sa.LargeBinary(), nullable=False),
        sa.Column("refresh_token_encrypted", sa.LargeBinary(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_youtube_integrations_user_id", "youtube_integrations", ["user_id"])
    op.create_index(
        "ix_youtube_integrations_user_active",
        "youtube_integrations",
        ["user_id", "is_active"],
    )

    op.create_table(
        "youtube_uploads",
        _uuid_pk(),
        _video_fk("video_file_id"),
        sa.Column(
            "youtube_integration_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("youtube_integrations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("youtube_video_id", sa.String(64), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("privacy_status", sa.String(16), nullable=False),
        sa.Column("status", upload_status, nullable=False),
        sa.Column("youtube_url", sa.String(255), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "privacy_status IN ('private', 'unlisted', 'public')",
            name="ck_youtube_uploads_privacy",
        ),
    )
    op.create_index("ix_youtube_uploads_video_file_id", "youtube_uploads", ["video_file_id"])
    op.create_index(
        "ix_youtube_uploads_video_integration",
        "youtube_uploads",
        ["video_file_id", "youtube_integration_id"],
    )


def downgrade() -> None:
    """Drop all tables and enums in reverse dependency order."""
    op.drop_table("youtube_uploads")
    op.drop_table("youtube_integrations")
    op.drop_table("video_tasks")
    op.drop_table("subtitles")
    op.drop_table("transcripts")
    op.drop_table("video_files")
    op.drop_table("oauth_accounts")
    op.drop_table("auth_sessions")
    op.drop_table("verification_tokens")
    op.drop_table("backup_codes")
    op.drop_table("users")

    bind = op.get_bind()
    upload_status.drop(bind, checkfirst=True)
    video_task_status.drop(bind, checkfirst=True)
    token_purpose.drop(bind, checkfirst=True)
