import json
import logging
from typing import Dict, List, Optional

import firebase_admin
from firebase_admin import credentials, messaging, exceptions as firebase_exceptions
from fastapi import Request
from starlette.concurrency import run_in_threadpool

from rescue_hub.notifications.models import DispatchResult
from rescue_hub.shared.errors import DependencyError

logger = logging.getLogger("notifications.utils")

# FCM rejects multicast messages addressed to more tokens than this
MAX_MULTICAST_TOKENS = 500


class PushClient:
    """
    Firebase Cloud Messaging client owned by the application lifespan.
    Without credentials the client stays disabled and every send raises
    DependencyError, which the dispatcher records as a failed delivery.
    """

    def __init__(self, credentials_json: Optional[str] = None, app_name: str = "rescue-hub"):
        self.credentials_json = credentials_json
        self.app_name = app_name
        self._app = None

    @property
    def enabled(self) -> bool:
        return self._app is not None

    def init(self) -> None:
        if not self.credentials_json:
            logger.warning("FIREBASE_CREDENTIALS not set; push notifications are disabled.")
            return
        cred = credentials.Certificate(json.loads(self.credentials_json))
        self._app = firebase_admin.initialize_app(cred, name=self.app_name)
        logger.info("Firebase Admin initialized")

    def close(self) -> None:
        if self._app is not None:
            firebase_admin.delete_app(self._app)
            self._app = None

    async def send_multicast(self, tokens: List[str], title: str, body: str, data: Optional[Dict] = None) -> DispatchResult:
        """Send one notification to every token, returning per-token counts."""
        if self._app is None:
            raise DependencyError("Push messaging is not configured")

        # FCM data payload values must be strings
        payload = {k: str(v) for k, v in (data or {}).items() if v is not None}
        result = DispatchResult()
        for start in range(0, len(tokens), MAX_MULTICAST_TOKENS):
            batch = tokens[start:start + MAX_MULTICAST_TOKENS]
            message = messaging.MulticastMessage(
                notification=messaging.Notification(title=title, body=body),
                data=payload,
                tokens=batch,
            )
            try:
                response = await run_in_threadpool(messaging.send_each_for_multicast, message, app=self._app)
            except (firebase_exceptions.FirebaseError, ValueError) as e:
                # a failed batch counts against its own tokens only
                logger.error(f"FCM multicast batch of {len(batch)} tokens failed: {e}")
                result = result + DispatchResult(failure_count=len(batch), error=f"FCM multicast failed: {e}")
                continue
            result = result + DispatchResult(
                success_count=response.success_count,
                failure_count=response.failure_count,
            )
        return result


def get_push_client(request: Request) -> PushClient:
    """FastAPI dependency returning the application's push client."""
    return request.app.state.push_client
