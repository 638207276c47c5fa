"""Project-wide constants.

Auth limits, media validation tables and storage key prefixes shared by the
HTTP service and the client package.
"""

# Email sign-in codes
OTP_LENGTH = 6
OTP_MIN_VALUE = 100000
OTP_MAX_VALUE = 999999
MAX_OTP_ATTEMPTS = 3

# TOTP / backup codes
TOTP_DIGITS = 6
TOTP_INTERVAL_SECONDS = 30
TOTP_VALID_WINDOW = 1
TOTP_ISSUER = "Stream Studio"
BACKUP_CODE_COUNT = 10
BACKUP_CODE_LENGTH = 8
BACKUP_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
SIGN_IN_TICKET_TTL_SECONDS = 300

# Upload / transcription
MAX_MEDIA_FILE_SIZE = 100 * 1024 * 1024  # 100MB
ALLOWED_MEDIA_TYPES: frozenset[str] = frozenset(
    {
        "video/mp4",
        "video/avi",
        "video/mov",
        "video/quicktime",
        "video/wmv",
        "video/flv",
        "video/webm",
        "video/mkv",
        "audio/mp3",
        "audio/mpeg",
        "audio/wav",
        "audio/m4a",
        "audio/ogg",
    }
)
CAPTION_FORMATS: tuple[str, ...] = ("webvtt", "srt")
CAPTION_CONTENT_TYPES: dict[str, str] = {
    "webvtt": "text/vtt",
    "srt": "application/x-subrip",
}
CAPTION_EXTENSIONS: dict[str, str] = {"webvtt": "vtt", "srt": "srt"}
TRANSCRIPTION_CACHE_SIZE = 100
TRANSCRIPTION_JOB_TTL_SECONDS = 60 * 60

# Storage key prefixes by upload type
UPLOAD_KEY_PREFIXES: dict[str, str] = {
    "video": "uploads",
    "transcript": "transcripts",
    "subtitle": "subtitles",
}
THUMBNAIL_KEY_PREFIX = "thumbnails"
UPLOAD_URL_EXPIRES_SECONDS = 3600

# Frame sampling
FRAME_COUNT = 3
FRAME_EDGE_SKIP_SECONDS = 2.0
FRAME_MIN_SPACING_SECONDS = 1.0

# Publishing
YOUTUBE_SCOPES: tuple[str, ...] = (
    "https://www.googleapis.com/auth/youtube.upload",
    "https://www.googleapis.com/auth/youtube",
    "https://www.googleapis.com/auth/youtube.force-ssl",
)
YOUTUBE_DEFAULT_CATEGORY_ID = "22"
YOUTUBE_PRIVACY_STATUSES: tuple[str, ...] = ("private", "unlisted", "public")
DEFAULT_PUBLISH_TAGS: tuple[str, ...] = ("AI Generated",)

NO_TRANSCRIPT_PLACEHOLDER = "No transcript available for this video."
