"""Authenticator-app enrollment flow (signed-in user).

    idle -> setup -> verify -> backup -> enabled

setup shows the QR code and manual key for a fresh secret; verify checks a
code against that unconfirmed secret; backup shows the backup codes. Only
complete() persists anything. abandon() at any step forgets the local
material and makes no API call.
"""

import enum

from app.client.api import API_ERRORS, StudioApiClient
from app.client.notifications import Notification, NotificationLog, Notifier
from app.exceptions import InvalidStateTransitionError
from app.schemas.auth import TwoFactorSetupResponse
from app.utils.codes import clean_totp_paste
from app.utils.logging import get_logger

log = get_logger(__name__)


class SetupStep(str, enum.Enum):
    IDLE = "idle"
    SETUP = "setup"
    VERIFY = "verify"
    BACKUP = "backup"
    ENABLED = "enabled"


class TwoFactorSetupFlow:
    """Drives /api/v1/2fa/* for the signed-in user."""

    def __init__(self, api: StudioApiClient, notify: Notifier | None = None):
        self.api = api
        self.notify = notify or NotificationLog()
        self.step = SetupStep.IDLE
        self.material: TwoFactorSetupResponse | None = None

    def _require(self, *steps: SetupStep) -> None:
        if self.step not in steps:
            raise InvalidStateTransitionError(
                f"Action not available in step {self.step.value}",
                from_status=self.step,
                to_status=steps[0],
            )

    def _toast(self, title: str, description: str, error: bool = False) -> None:
        self.notify(Notification(title, description, "destructive" if error else "default"))

    async def start(self) -> bool:
        """Fetch a fresh secret, QR code and backup codes."""
        self._require(SetupStep.IDLE, SetupStep.SETUP)
        try:
            self.material = await self.api.setup_two_factor()
        except API_ERRORS as e:
            log.warning("two_factor_setup_failed", error=type(e).__name__)
            self._toast("Error", "Failed to start two-factor setup.", error=True)
            return False
        self.step = SetupStep.SETUP
        return True

    def begin_verification(self) -> None:
        self._require(SetupStep.SETUP)
        self.step = SetupStep.VERIFY

    async def verify(self, code: str) -> bool:
        """Check a code from the authenticator app. Does not enable 2FA."""
        self._require(SetupStep.SETUP, SetupStep.VERIFY)
        self.step = SetupStep.VERIFY
        cleaned = clean_totp_paste(code)
        if cleaned is None:
            self._toast("Invalid Code", "Enter the 6-digit code from your app.", error=True)
            return False

        try:
            await self.api.verify_two_factor_setup(self.material.secret, cleaned)
        except API_ERRORS as e:
            log.info("two_factor_setup_code_rejected", error=type(e).__name__)
            self._toast(
                "Invalid Code",
                "The code you entered is invalid. Please try again.",
                error=True,
            )
            return False

        self.step = SetupStep.BACKUP
        self._toast("Code Verified", "Save your backup codes to finish setup.")
        return True

    @property
    def backup_codes(self) -> list[str]:
        return list(self.material.backup_codes) if self.material else []

    async def complete(self) -> bool:
        """Persist the secret and backup codes."""
        self._require(SetupStep.BACKUP)
        try:
            await self.api.enable_two_factor(self.material.secret, self.material.backup_codes)
        except API_ERRORS as e:
            log.warning("two_factor_enable_failed", error=type(e).__name__)
            self._toast("Error", "Failed to enable two-factor authentication.", error=True)
            return False

        self.material = None
        self.step = SetupStep.ENABLED
        self._toast("2FA Enabled", "Two-factor authentication is now enabled.")
        return True

    def abandon(self) -> None:
        """Drop the setup without touching the server."""
        if self.step == SetupStep.ENABLED:
            return
        self.material = None
        self.step = SetupStep.IDLE

    async def disable(self) -> bool:
        try:
            await self.api.disable_two_factor()
        except API_ERRORS as e:
            log.warning("two_factor_disable_failed", error=type(e).__name__)
            self._toast("Error", "Failed to disable two-factor authentication.", error=True)
            return False

        self.material = None
        self.step = SetupStep.IDLE
        self._toast("2FA Disabled", "Two-factor authentication has been disabled.")
        return True
