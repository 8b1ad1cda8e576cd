from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Optional

import requests

from .crisis_detector import DetectionResult

logger = logging.getLogger(__name__)


class CrisisNotifier:
    """Posts positive crisis detections to an operator webhook.

    Delivery is fire-and-forget: each notification runs in its own daemon
    thread, is never retried, and failures are only logged.
    """

    def __init__(
        self,
        webhook_url: Optional[str],
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.webhook_url = (webhook_url or "").strip() or None
        self.timeout = timeout
        self.session = session

    @property
    def enabled(self) -> bool:
        return self.webhook_url is not None

    def build_payload(
        self,
        message: str,
        result: DetectionResult,
        timestamp: Optional[datetime] = None,
    ) -> dict:
        sent_at = timestamp or datetime.now(timezone.utc)
        return {
            "message": message,
            "keywords": list(result.matched_signals),
            "confidence": result.confidence,
            "timestamp": sent_at.isoformat(),
        }

    def notify(self, message: str, result: DetectionResult) -> Optional[threading.Thread]:
        if not result.is_crisis:
            return None
        if not self.enabled:
            logger.info("Crisis webhook URL not configured, skipping notification")
            return None
        payload = self.build_payload(message, result)
        thread = threading.Thread(
            target=self.send,
            args=(payload,),
            name="crisis-webhook",
            daemon=True,
        )
        try:
            thread.start()
        except RuntimeError as exc:
            logger.error("Unable to start crisis notification: %s", exc)
            return None
        return thread

    def send(self, payload: dict) -> bool:
        client = self.session or requests
        try:
            resp = client.post(self.webhook_url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.error("Failed to send crisis notification: %s", exc)
            return False
        logger.info("Crisis notification sent successfully")
        return True
