from __future__ import annotations

import logging

import firebase_admin
from firebase_admin import credentials, messaging
from firebase_admin.exceptions import FirebaseError, InvalidArgumentError

from myzo.integrations.common import IntegrationCallError
from myzo.integrations.push.base import PushProvider, PushResult

logger = logging.getLogger(__name__)

_APP_NAME = "myzo-push"

# Errors after which a registration token will never work again.
_PERMANENT_ERRORS = (
    messaging.UnregisteredError,
    messaging.SenderIdMismatchError,
    InvalidArgumentError,
)


def _firebase_app(project_id: str, client_email: str, private_key: str):
    try:
        return firebase_admin.get_app(_APP_NAME)
    except ValueError:
        cred = credentials.Certificate({
            "type": "service_account",
            "project_id": project_id,
            "client_email": client_email,
            "private_key": private_key.replace("\\n", "\n"),
            "token_uri": "https://oauth2.googleapis.com/token",
        })
        return firebase_admin.initialize_app(cred, name=_APP_NAME)


class FcmPushProvider(PushProvider):
    name = "firebase"

    def __init__(self, *, project_id: str, client_email: str, private_key: str):
        self.app = _firebase_app(project_id, client_email, private_key)

    def send_multicast(self, *, tokens: list[str], title: str, body: str, data: dict | None = None) -> PushResult:
        if not tokens:
            return PushResult()
        message = messaging.MulticastMessage(
            tokens=list(tokens),
            notification=messaging.Notification(title=title, body=body),
            data={str(k): str(v) for k, v in (data or {}).items()},
        )
        try:
            batch = messaging.send_each_for_multicast(message, app=self.app)
        except FirebaseError as e:
            raise IntegrationCallError(f"FCM_SEND_FAILED:{e.code}") from e
        result = PushResult(success_count=int(batch.success_count), failure_count=int(batch.failure_count))
        for token, resp in zip(tokens, batch.responses):
            if resp.success:
                continue
            if isinstance(resp.exception, _PERMANENT_ERRORS):
                result.invalid_tokens.append(token)
            else:
                logger.warning("fcm_send_transient_failure err=%s", type(resp.exception).__name__)
        return result
