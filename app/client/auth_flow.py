"""Sign-in wizard controller.

Steps and allowed transitions:

    email      -> code | twoFactor
    code       -> success
    twoFactor  -> success | backupCode
    backupCode -> success | twoFactor
    any non-success step -> email (back)

success is terminal. All mutable wizard state (buffers, attempt counter,
per-account flags) lives on one AuthFlowController and changes only
through its methods.

Attempt Budget:
    Emailed codes are capped at MAX_OTP_ATTEMPTS failed submissions, whatever
    the reason the server refused them. Once the cap is reached, submission
    is refused without any network call until the user resends or goes back.
    TOTP and backup codes are not capped client-side.

Delays:
    confirmation_delay (before showing success) and redirect_delay (before
    navigating away) are presentation pacing only. Pass 0 in tests.
"""

import asyncio
import enum
from collections.abc import Awaitable, Callable

from app.client.api import API_ERRORS, StudioApiClient
from app.client.notifications import Notification, NotificationLog, Notifier
from app.constants import MAX_OTP_ATTEMPTS, OTP_LENGTH
from app.exceptions import AuthenticationError, InvalidStateTransitionError, RateLimitedError
from app.utils.codes import clean_otp_paste, clean_totp_paste, format_backup_code
from app.utils.logging import get_logger, mask_email

log = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class AuthStep(str, enum.Enum):
    EMAIL = "email"
    CODE = "code"
    TWO_FACTOR = "twoFactor"
    BACKUP_CODE = "backupCode"
    SUCCESS = "success"


TRANSITIONS: dict[AuthStep, frozenset[AuthStep]] = {
    AuthStep.EMAIL: frozenset({AuthStep.CODE, AuthStep.TWO_FACTOR}),
    AuthStep.CODE: frozenset({AuthStep.SUCCESS, AuthStep.EMAIL}),
    AuthStep.TWO_FACTOR: frozenset({AuthStep.SUCCESS, AuthStep.BACKUP_CODE, AuthStep.EMAIL}),
    AuthStep.BACKUP_CODE: frozenset({AuthStep.SUCCESS, AuthStep.TWO_FACTOR, AuthStep.EMAIL}),
    AuthStep.SUCCESS: frozenset(),
}


class CodeBuffer:
    """Six single-digit slots with a focused index.

    Example:
        >>> buffer = CodeBuffer()
        >>> buffer.enter(0, "4")
        False
        >>> buffer.focus
        1
    """

    def __init__(self, size: int = OTP_LENGTH):
        self.size = size
        self.slots: list[str] = [""] * size
        self.focus = 0

    @property
    def value(self) -> str:
        return "".join(self.slots)

    @property
    def is_complete(self) -> bool:
        return all(self.slots)

    def enter(self, index: int, char: str) -> bool:
        """Put a digit at index and advance focus.

        Returns:
            True when the last slot was filled and the buffer is complete,
            i.e. the caller should submit.
        """
        if not 0 <= index < self.size or len(char) != 1 or not char.isdigit():
            return False
        self.slots[index] = char
        if index < self.size - 1:
            self.focus = index + 1
            return False
        self.focus = index
        return self.is_complete

    def backspace(self, index: int) -> None:
        """Clear slot index; on an already empty slot move focus back one."""
        if not 0 <= index < self.size:
            return
        if self.slots[index]:
            self.slots[index] = ""
            self.focus = index
        elif index > 0:
            self.focus = index - 1

    def fill(self, code: str | None) -> bool:
        """Fill all slots from a cleaned paste. Returns False if code is unusable."""
        if code is None or len(code) != self.size or not code.isdigit():
            return False
        self.slots = list(code)
        self.focus = self.size - 1
        return True

    def clear(self) -> None:
        self.slots = [""] * self.size
        self.focus = 0


class AuthFlowController:
    """Owns the sign-in wizard state and drives the API.

    Attributes:
        step: Current AuthStep.
        attempt_count: Failed emailed-code submissions since the last resend/back.
        session_token: Set once sign-in completes.
        redirect_to: Set after the post-success redirect delay.
    """

    def __init__(
        self,
        api: StudioApiClient,
        notify: Notifier | None = None,
        callback_url: str = "/dashboard",
        confirmation_delay: float = 2.0,
        redirect_delay: float = 2.0,
        sleep: Sleep | None = None,
    ):
        self.api = api
        self.notify = notify or NotificationLog()
        self.callback_url = callback_url
        self.confirmation_delay = confirmation_delay
        self.redirect_delay = redirect_delay
        self._sleep = sleep or asyncio.sleep

        self.step = AuthStep.EMAIL
        self.email = ""
        self.user_id = None
        self.two_factor_enabled = False
        self.attempt_count = 0
        self.code = CodeBuffer()
        self.totp = CodeBuffer()
        self.backup_code = ""
        self.remaining_backup_codes: int | None = None
        self.session_token: str | None = None
        self.redirect_to: str | None = None
        self.is_loading = False

    # State helpers

    def _transition(self, target: AuthStep) -> None:
        if target not in TRANSITIONS[self.step]:
            raise InvalidStateTransitionError(
                f"Invalid transition: {self.step.value} -> {target.value}",
                from_status=self.step,
                to_status=target,
            )
        log.debug("auth_step_changed", from_step=self.step.value, to_step=target.value)
        self.step = target

    def _require(self, *steps: AuthStep) -> None:
        if self.step not in steps:
            raise InvalidStateTransitionError(
                f"Action not available in step {self.step.value}",
                from_status=self.step,
                to_status=steps[0],
            )

    def _toast(self, title: str, description: str, error: bool = False) -> None:
        self.notify(Notification(title, description, "destructive" if error else "default"))

    @property
    def can_submit_code(self) -> bool:
        return self.step == AuthStep.CODE and self.attempt_count < MAX_OTP_ATTEMPTS

    @property
    def can_resend(self) -> bool:
        return self.step == AuthStep.CODE and not self.two_factor_enabled

    def _reset_account_state(self) -> None:
        self.code.clear()
        self.totp.clear()
        self.backup_code = ""
        self.attempt_count = 0
        self.two_factor_enabled = False
        self.user_id = None
        self.remaining_backup_codes = None

    async def _finish(self, title: str, description: str) -> None:
        await self._sleep(self.confirmation_delay)
        self._transition(AuthStep.SUCCESS)
        self._toast(title, description)

    async def _redirect(self) -> None:
        await self._sleep(self.redirect_delay)
        self.redirect_to = self.callback_url
        log.info("sign_in_redirect", target=self.callback_url)

    # Email step

    async def submit_email(self, email: str) -> AuthStep:
        """Look the account up and move to the code or two-factor step."""
        self._require(AuthStep.EMAIL)
        email = email.strip().lower()
        if not email:
            self._toast("Email Required", "Please enter your email before proceeding.", error=True)
            return self.step

        self.is_loading = True
        try:
            try:
                lookup = await self.api.lookup_account(email)
            except RateLimitedError:
                self._toast(
                    "Slow Down",
                    "You're making too many requests. Please wait a minute.",
                    error=True,
                )
                return self.step
            except API_ERRORS as e:
                log.warning("account_lookup_failed", error=type(e).__name__)
                self._toast("Error", "An unexpected error occurred. Please try again.", error=True)
                return self.step

            if not lookup.exists:
                self._toast(
                    "User Not Registered",
                    "No account was found for this email address.",
                    error=True,
                )
                return self.step

            self.email = email
            self.user_id = lookup.user_id
            self.two_factor_enabled = lookup.two_factor_enabled
            if lookup.two_factor_enabled:
                self.totp.clear()
                self._transition(AuthStep.TWO_FACTOR)
                self._toast("2FA Required", "Please enter the code from your authenticator app.")
                return self.step

            try:
                await self.api.request_otp(email)
            except API_ERRORS as e:
                self._toast("Error", f"Failed to send OTP: {e}", error=True)
                return self.step

            self.attempt_count = 0
            self.code.clear()
            self._transition(AuthStep.CODE)
            self._toast("OTP Sent", "A one-time password has been sent to your email.")
            log.info("sign_in_code_requested", email=mask_email(email))
            return self.step
        finally:
            self.is_loading = False

    # Emailed code step

    async def enter_code_digit(self, index: int, char: str) -> bool:
        """Type a digit; submits automatically when the last slot completes the code."""
        self._require(AuthStep.CODE)
        if self.code.enter(index, char):
            return await self.submit_code()
        return False

    def backspace_code(self, index: int) -> None:
        self.code.backspace(index)

    async def paste_code(self, raw: str) -> bool:
        """Paste an emailed code; hyphens are ignored. Submits when it fills the buffer."""
        self._require(AuthStep.CODE)
        if not self.code.fill(clean_otp_paste(raw)):
            return False
        return await self.submit_code()

    async def submit_code(self) -> bool:
        """Verify the emailed code.

        Returns:
            True on successful sign-in.
        """
        self._require(AuthStep.CODE)
        if self.attempt_count >= MAX_OTP_ATTEMPTS:
            self._toast(
                "Maximum Attempts Reached",
                "You have exceeded the maximum number of OTP attempts.",
                error=True,
            )
            return False
        if not self.code.is_complete:
            self._toast("Error", "Please enter the full 6-digit code.", error=True)
            return False

        self.is_loading = True
        try:
            result = await self.api.consume_otp(self.email, self.code.value, self.callback_url)
        except API_ERRORS as e:
            self.attempt_count += 1
            self.code.clear()
            attempts_left = MAX_OTP_ATTEMPTS - self.attempt_count
            log.warning(
                "otp_submit_failed",
                error=type(e).__name__,
                attempt_count=self.attempt_count,
            )
            if isinstance(e, AuthenticationError):
                description = f"Invalid OTP. Attempts left: {attempts_left}"
            else:
                description = f"Could not verify the code. Attempts left: {attempts_left}"
            self._toast("Error", description, error=True)
            return False
        finally:
            self.is_loading = False

        self.session_token = result.session_token
        await self._finish("Login Successful", "You have successfully logged in.")
        await self._redirect()
        return True

    async def resend_code(self) -> bool:
        """Issue a fresh emailed code and reset the attempt budget."""
        self._require(AuthStep.CODE)
        if not self.can_resend:
            return False
        try:
            await self.api.request_otp(self.email)
        except API_ERRORS as e:
            self._toast("Error", f"Failed to resend OTP. Please try again. {e}", error=True)
            return False

        self.attempt_count = 0
        self.code.clear()
        self._toast("OTP Resent", "A new OTP has been sent to your email.")
        return True

    # Authenticator step

    async def enter_totp_digit(self, index: int, char: str) -> bool:
        self._require(AuthStep.TWO_FACTOR)
        if self.totp.enter(index, char):
            return await self.submit_totp()
        return False

    def backspace_totp(self, index: int) -> None:
        self.totp.backspace(index)

    async def paste_totp(self, raw: str) -> bool:
        """Paste an authenticator code; whitespace is ignored and digits are required."""
        self._require(AuthStep.TWO_FACTOR)
        if not self.totp.fill(clean_totp_paste(raw)):
            return False
        return await self.submit_totp()

    async def submit_totp(self) -> bool:
        """Verify an authenticator code. Failures are not counted."""
        self._require(AuthStep.TWO_FACTOR)
        if not self.totp.is_complete:
            self._toast("Error", "Please enter the full 6-digit code.", error=True)
            return False

        self.is_loading = True
        try:
            result = await self.api.verify_two_factor(self.email, self.totp.value, False)
        except API_ERRORS as e:
            log.warning("totp_submit_failed", error=type(e).__name__)
            self.totp.clear()
            self._toast("Error", "An error occurred while verifying your code.", error=True)
            return False
        finally:
            self.is_loading = False

        if not result.valid:
            self.totp.clear()
            self._toast(
                "Invalid Code",
                "The code you entered is invalid. Please try again.",
                error=True,
            )
            return False

        await self._finish("2FA Verified", "You have successfully logged in.")
        return await self._complete_sign_in(result.sign_in_ticket)

    def use_backup_code(self) -> None:
        self._transition(AuthStep.BACKUP_CODE)
        self.backup_code = ""

    def back_to_two_factor(self) -> None:
        self._transition(AuthStep.TWO_FACTOR)
        self.totp.clear()

    # Backup code step

    def set_backup_code(self, raw: str) -> str:
        """Store typed input in display form (e.g. "ab12cd34" -> "AB12 CD34")."""
        self._require(AuthStep.BACKUP_CODE)
        self.backup_code = format_backup_code(raw)
        return self.backup_code

    async def submit_backup_code(self) -> bool:
        """Redeem a backup code. On failure the typed code is kept for editing."""
        self._require(AuthStep.BACKUP_CODE)
        if not self.backup_code:
            self._toast("Error", "Please enter a backup code.", error=True)
            return False

        self.is_loading = True
        try:
            result = await self.api.verify_two_factor(self.email, self.backup_code, True)
        except API_ERRORS as e:
            log.warning("backup_code_submit_failed", error=type(e).__name__)
            self._toast(
                "Error", "An error occurred while verifying your backup code.", error=True
            )
            return False
        finally:
            self.is_loading = False

        if not result.valid:
            self._toast(
                "Invalid Backup Code",
                "The backup code you entered is invalid or has already been used.",
                error=True,
            )
            return False

        self.remaining_backup_codes = result.remaining_backup_codes
        await self._finish(
            "Backup Code Verified",
            f"Login successful. You have {result.remaining_backup_codes} backup codes remaining.",
        )
        return await self._complete_sign_in(result.sign_in_ticket)

    async def _complete_sign_in(self, ticket: str | None) -> bool:
        """Exchange the 2FA ticket for a session, then redirect."""
        if not ticket:
            self._toast("Error", "Sign-in could not be completed. Please try again.", error=True)
            return False
        try:
            session = await self.api.create_session(self.email, ticket)
        except API_ERRORS as e:
            log.warning("session_exchange_failed", error=type(e).__name__)
            self._toast("Error", "Sign-in could not be completed. Please try again.", error=True)
            return False

        self.session_token = session.session_token
        await self._redirect()
        return True

    # Navigation

    def back(self) -> None:
        """Return to the email step, forgetting everything about the account."""
        if self.step == AuthStep.SUCCESS:
            raise InvalidStateTransitionError(
                "Cannot go back after sign-in",
                from_status=self.step,
                to_status=AuthStep.EMAIL,
            )
        if self.step != AuthStep.EMAIL:
            self._transition(AuthStep.EMAIL)
        self._reset_account_state()
        self.email = ""
