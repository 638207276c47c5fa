"""SQLAlchemy 2.0 ORM models.

This module contains all SQLAlchemy models for the studio service.
All models use the Mapped[type] annotation pattern required by SQLAlchemy 2.0.

Encrypted Fields Pattern:
    Sensitive credentials (TOTP secrets, OAuth tokens) are stored encrypted using
    Fernet symmetric encryption. Encrypted columns follow the naming convention
    `{field}_encrypted` and use LargeBinary type since Fernet outputs bytes.

Hashed Fields Pattern:
    Values that are only ever compared (session tokens, sign-in codes, backup
    codes) are stored as SHA-256 hex digests in `{field}_hash` columns.

    NEVER expose encrypted or hashed fields in __repr__ or log statements.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, validates

from app.exceptions import InvalidStateTransitionError


def utcnow() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TokenPurpose(enum.Enum):
    """What a VerificationToken row authorizes.

    email_otp: 6-digit code emailed for passwordless sign-in.
    two_factor_ticket: single-use ticket issued after a successful TOTP or
        backup-code check, exchanged for a session by the final sign-in call.
    """

    EMAIL_OTP = "email_otp"
    TWO_FACTOR_TICKET = "two_factor_ticket"


class VideoTaskStatus(enum.Enum):
    """Coarse processing status of an uploaded video.

    Flow:
        not_started → transcribing | captioning
        transcribing → transcoding (captions finished after transcription)
        captioning → transcoding (transcription finished after captions)
        transcoding → completed | failed

    Re-running a stage never moves the status backwards.
    """

    NOT_STARTED = "NOT_STARTED"
    TRANSCRIBING = "TRANSCRIBING"
    CAPTIONING = "CAPTIONING"
    TRANSCODING = "TRANSCODING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class UploadStatus(enum.Enum):
    """Outcome of a publish attempt to YouTube."""

    PUBLISHED = "PUBLISHED"
    FAILED = "FAILED"


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class User(Base):
    """A studio account (credential record).

    Created on first email sign-in or on first Google OAuth sign-in. Email is
    unique and stored lower-cased.

    Attributes:
        id: Internal UUID primary key.
        email: Lower-cased, trimmed email address.
        email_verified: When the address was last proven by an emailed code.
        name / image / phone_number / role: Profile fields.
        two_factor_enabled: Whether sign-in requires a TOTP or backup code.
        two_factor_secret_encrypted: Fernet-encrypted base32 TOTP secret.

    Note:
        The secret is present if and only if two_factor_enabled is true.
        Use enable_two_factor()/disable_two_factor() to change either field.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(320),
        unique=True,
        nullable=False,
        index=True,
    )
    email_verified: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    image: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    role: Mapped[str] = mapped_column(String(20), default="user", server_default="user")
    two_factor_enabled: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default="0",
        nullable=False,
    )
    two_factor_secret_encrypted: Mapped[bytes | None] = mapped_column(
        LargeBinary,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    backup_codes: Mapped[list["BackupCode"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
    )
    videos: Mapped[list["VideoFile"]] = relationship(back_populates="user")

    __table_args__ = (
        CheckConstraint(
            "(two_factor_enabled = true AND two_factor_secret_encrypted IS NOT NULL) OR "
            "(two_factor_enabled = false AND two_factor_secret_encrypted IS NULL)",
            name="ck_users_two_factor_secret",
        ),
    )

    @validates("email")
    def normalize_email(self, key: str, value: str) -> str:
        return value.strip().lower()

    def enable_two_factor(self, secret_encrypted: bytes) -> None:
        self.two_factor_secret_encrypted = secret_encrypted
        self.two_factor_enabled = True

    def disable_two_factor(self) -> None:
        self.two_factor_secret_encrypted = None
        self.two_factor_enabled = False

    @property
    def has_active_two_factor(self) -> bool:
        """True only when 2FA is on and a secret is actually stored."""
        return self.two_factor_enabled and self.two_factor_secret_encrypted is not None

    def __repr__(self) -> str:
        """Return string representation for debugging.

        Note:
            NEVER expose the TOTP secret in repr.
        """
        return (
            f"<User(id={self.id!s:.8}, email={self.email!r}, "
            f"two_factor_enabled={self.two_factor_enabled})>"
        )


class BackupCode(Base):
    """One unconsumed single-use 2FA backup code.

    Consuming a code deletes its row. The delete is conditional on the hash so
    two concurrent redemptions of the same code cannot both succeed.
    """

    __tablename__ = "backup_codes"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    code_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )

    user: Mapped["User"] = relationship(back_populates="backup_codes")

    __table_args__ = (
        UniqueConstraint("user_id", "code_hash", name="uq_backup_codes_user_code"),
    )


class VerificationToken(Base):
    """Short-lived challenge bound to an email address.

    Issuing a new token deletes every earlier token with the same identifier
    and purpose, so only the latest challenge can be redeemed.
    """

    __tablename__ = "verification_tokens"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    identifier: Mapped[str] = mapped_column(String(320), nullable=False)
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    purpose: Mapped[TokenPurpose] = mapped_column(
        Enum(
            TokenPurpose,
            native_enum=True,
            name="tokenpurpose",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )

    __table_args__ = (
        Index("ix_verification_tokens_identifier_purpose", "identifier", "purpose"),
    )


class AuthSession(Base):
    """Server-side session minted after a completed sign-in."""

    __tablename__ = "auth_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )

    user: Mapped["User"] = relationship()


class OAuthAccount(Base):
    """Link between a User and an external identity provider account."""

    __tablename__ = "oauth_accounts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    provider_account_id: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )

    __table_args__ = (
        UniqueConstraint("provider", "provider_account_id", name="uq_oauth_provider_account"),
    )


class VideoFile(Base):
    """An uploaded video (Video Asset).

    Created when the upload URL is issued, before any bytes reach storage.
    is_uploaded flips to True once a processing step has read the file.
    """

    __tablename__ = "video_files"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_key: Mapped[str] = mapped_column(String(512), nullable=False)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    thumbnail_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    is_uploaded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    user: Mapped["User"] = relationship(back_populates="videos")
    transcript: Mapped["Transcript | None"] = relationship(
        back_populates="video",
        cascade="all, delete-orphan",
        uselist=False,
    )
    subtitles: Mapped[list["Subtitles"]] = relationship(
        back_populates="video",
        cascade="all, delete-orphan",
    )
    task: Mapped["VideoTask | None"] = relationship(
        back_populates="video",
        cascade="all, delete-orphan",
        uselist=False,
    )

    def __repr__(self) -> str:
        return f"<VideoFile(id={self.id!s:.8}, name={self.name!r}, uploaded={self.is_uploaded})>"


class Transcript(Base):
    """Full transcription of a video (one per video)."""

    __tablename__ = "transcripts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    video_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("video_files.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    file_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    raw_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    language: Mapped[str | None] = mapped_column(String(16), nullable=True)
    word_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    video: Mapped["VideoFile"] = relationship(back_populates="transcript")


class Subtitles(Base):
    """Caption file for a video, one row per format ("webvtt" or "srt")."""

    __tablename__ = "subtitles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    video_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("video_files.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    format: Mapped[str] = mapped_column(String(10), nullable=False)
    file_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    raw_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    video: Mapped["VideoFile"] = relationship(back_populates="subtitles")

    __table_args__ = (
        UniqueConstraint("video_id", "format", name="uq_subtitles_video_format"),
        CheckConstraint("format IN ('webvtt', 'srt')", name="ck_subtitles_format"),
    )


class VideoTask(Base):
    """Coarse per-video processing status.

    Status moves forward only. Transitions listed in VALID_TRANSITIONS are
    enforced by @validates on ORM assignment; the task status service applies
    the same table through a conditional UPDATE so concurrent stage handlers
    cannot overwrite each other.
    """

    __tablename__ = "video_tasks"

    VALID_TRANSITIONS = {
        VideoTaskStatus.NOT_STARTED: [
            VideoTaskStatus.TRANSCRIBING,
            VideoTaskStatus.CAPTIONING,
            VideoTaskStatus.FAILED,
        ],
        VideoTaskStatus.TRANSCRIBING: [VideoTaskStatus.TRANSCODING, VideoTaskStatus.FAILED],
        VideoTaskStatus.CAPTIONING: [VideoTaskStatus.TRANSCODING, VideoTaskStatus.FAILED],
        VideoTaskStatus.TRANSCODING: [VideoTaskStatus.COMPLETED, VideoTaskStatus.FAILED],
        VideoTaskStatus.COMPLETED: [],
        VideoTaskStatus.FAILED: [VideoTaskStatus.NOT_STARTED],
    }

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    video_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("video_files.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    status: Mapped[VideoTaskStatus] = mapped_column(
        Enum(
            VideoTaskStatus,
            native_enum=True,
            name="videotaskstatus",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=VideoTaskStatus.NOT_STARTED,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    video: Mapped["VideoFile"] = relationship(back_populates="task")

    @validates("status")
    def validate_status_change(self, key: str, value: VideoTaskStatus) -> VideoTaskStatus:
        """Validate status transition before committing to database.

        Raises:
            InvalidStateTransitionError: If the transition is not listed in
                VALID_TRANSITIONS.
        """
        if self.status is None:
            return value

        allowed_transitions = self.VALID_TRANSITIONS.get(self.status, [])
        if value not in allowed_transitions:
            raise InvalidStateTransitionError(
                f"Invalid transition: {self.status.value} → {value.value}",
                from_status=self.status,
                to_status=value,
            )
        return value

    def __repr__(self) -> str:
        return f"<VideoTask(video_id={self.video_id!s:.8}, status={self.status.value!r})>"


class YouTubeIntegration(Base):
    """Linked YouTube channel with encrypted OAuth tokens.

    At most one row per user has is_active=True. Linking a new channel
    deactivates the earlier rows in the same transaction.
    """

    __tablename__ = "youtube_integrations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    channel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    channel_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    access_token_encrypted: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    refresh_token_encrypted: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (
        Index("ix_youtube_integrations_user_active", "user_id", "is_active"),
    )

    def __repr__(self) -> str:
        """Return string representation for debugging.

        Note:
            NEVER expose encrypted tokens in repr.
        """
        return (
            f"<YouTubeIntegration(user_id={self.user_id!s:.8}, "
            f"channel_id={self.channel_id!r}, is_active={self.is_active})>"
        )


class YouTubeUpload(Base):
    """Record of a publish attempt for a video to a linked channel."""

    __tablename__ = "youtube_uploads"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    video_file_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("video_files.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    youtube_integration_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("youtube_integrations.id", ondelete="CASCADE"),
        nullable=False,
    )
    youtube_video_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    privacy_status: Mapped[str] = mapped_column(String(16), nullable=False, default="private")
    status: Mapped[UploadStatus] = mapped_column(
        Enum(
            UploadStatus,
            native_enum=True,
            name="uploadstatus",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    youtube_url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )

    __table_args__ = (
        Index(
            "ix_youtube_uploads_video_integration",
            "video_file_id",
            "youtube_integration_id",
        ),
        CheckConstraint(
            "privacy_status IN ('private', 'unlisted', 'public')",
            name="ck_youtube_uploads_privacy",
        ),
    )
