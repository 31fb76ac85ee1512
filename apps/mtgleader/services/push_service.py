"""
Push notification transport over Firebase Cloud Messaging.

``get_sender()`` returns None when FCM is not configured, in which case
callers skip push delivery.
"""

import asyncio
import logging
from typing import Dict, Optional

import firebase_admin
from firebase_admin import credentials, messaging

from mtgleader import config

logger = logging.getLogger(__name__)

_sender = None


class InvalidTokenError(Exception):
    """The device token is unknown to FCM and should be forgotten."""


class FCMSender:
    """Sends data (and optionally alert) messages to single device tokens."""

    def __init__(self, app):
        self.app = app

    async def send(
        self,
        token: str,
        data: Dict[str, str],
        title: Optional[str] = None,
        body: Optional[str] = None,
    ) -> str:
        """
        Send one message.

        Args:
            token: Device registration token
            data: String-valued data payload
            title: Alert title; when omitted the message is data-only
            body: Alert body

        Returns:
            FCM message id

        Raises:
            InvalidTokenError: FCM rejected the token as unregistered
        """
        notification = None
        apns = None
        if title:
            notification = messaging.Notification(title=title, body=body)
            apns = messaging.APNSConfig(payload=messaging.APNSPayload(aps=messaging.Aps(sound="default")))
        message = messaging.Message(token=token, data=data, notification=notification, apns=apns)
        try:
            return await asyncio.to_thread(messaging.send, message, False, self.app)
        except (messaging.UnregisteredError, messaging.SenderIdMismatchError) as e:
            raise InvalidTokenError(str(e)) from e


def get_sender() -> Optional[FCMSender]:
    """Lazily initialise the Firebase app from FCM_CREDENTIALS_PATH."""
    global _sender
    if _sender is not None:
        return _sender
    if not config.FCM_CREDENTIALS_PATH:
        return None

    options = {"projectId": config.FCM_PROJECT_ID} if config.FCM_PROJECT_ID else None
    try:
        app = firebase_admin.get_app("mtgleader-push")
    except ValueError:
        cred = credentials.Certificate(config.FCM_CREDENTIALS_PATH)
        app = firebase_admin.initialize_app(cred, options, name="mtgleader-push")
    _sender = FCMSender(app)
    logger.info("FCM push sender initialised")
    return _sender
