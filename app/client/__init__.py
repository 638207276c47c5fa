"""Client package: the sign-in wizard and the upload pipeline.

These controllers drive the HTTP API through StudioApiClient with an
explicit session token, and report every outcome as a Notification.
"""

from app.client.api import API_ERRORS, StudioApiClient
from app.client.auth_flow import AuthFlowController, AuthStep, CodeBuffer
from app.client.notifications import Notification, NotificationLog
from app.client.two_factor_setup import SetupStep, TwoFactorSetupFlow
from app.client.upload_orchestrator import PipelineOutcome, PipelineStatus, UploadOrchestrator

__all__ = [
    "API_ERRORS",
    "AuthFlowController",
    "AuthStep",
    "CodeBuffer",
    "Notification",
    "NotificationLog",
    "PipelineOutcome",
    "PipelineStatus",
    "SetupStep",
    "StudioApiClient",
    "TwoFactorSetupFlow",
    "UploadOrchestrator",
]
