"""
Channel Gateway
===============
Contract for delivering content to external channels, plus the two adapters
shipped with the core:

- MockGateway: in-process stand-in used in mock mode and in tests
- WebhookGateway: posts to an external workflow engine's webhooks
"""
import hashlib
import hmac
import json
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

import requests

from .errors import GatewayError
from .logging_config import gateway_logger as logger
from .models.content import Content
from .serializers import content_to_dict


@dataclass
class PublishResult:
    """Result of a publish attempt"""
    success: bool
    external_id: Optional[str] = None
    error: Optional[str] = None
    permanent: bool = False  # failure that retrying will not fix


@dataclass
class HealthStatus:
    healthy: bool
    message: str


class ChannelGateway:
    """Delivers content to a named channel. Implementations must be thread-safe."""

    def publish(self, channel: str, content: Content, timeout: Optional[float] = None) -> PublishResult:
        raise NotImplementedError

    def check_health(self) -> HealthStatus:
        raise NotImplementedError


# ============================================================
# MOCK GATEWAY
# ============================================================

@dataclass
class _MockCall:
    channel: str
    content_id: str
    at: datetime


class MockGateway(ChannelGateway):
    """
    Gateway that succeeds unless told otherwise.

    ``fail_channels`` fail with a retryable error, ``permanent_fail_channels``
    with a permanent one. ``failures_before_success`` makes the first N calls
    per (content, channel) fail.
    """

    def __init__(
        self,
        fail_channels: Optional[Set[str]] = None,
        permanent_fail_channels: Optional[Set[str]] = None,
        failures_before_success: int = 0,
        delay_seconds: float = 0.0,
        healthy: bool = True,
    ):
        self.fail_channels = set(fail_channels or ())
        self.permanent_fail_channels = set(permanent_fail_channels or ())
        self.failures_before_success = failures_before_success
        self.delay_seconds = delay_seconds
        self.healthy = healthy
        self.calls: List[_MockCall] = []
        self._attempts: Dict[tuple, int] = {}
        self._lock = threading.Lock()
        self._released = threading.Event()
        self._released.set()

    def hold(self):
        """Block publish() calls until release() is called."""
        self._released.clear()

    def release(self):
        self._released.set()

    def publish(self, channel: str, content: Content, timeout: Optional[float] = None) -> PublishResult:
        with self._lock:
            self.calls.append(_MockCall(channel, content.id, datetime.now(timezone.utc)))
            key = (content.id, channel)
            self._attempts[key] = self._attempts.get(key, 0) + 1
            attempt = self._attempts[key]

        self._released.wait(timeout=30)
        if self.delay_seconds:
            time.sleep(self.delay_seconds)

        if channel in self.permanent_fail_channels:
            return PublishResult(success=False, error=f"{channel} rejected the content", permanent=True)
        if channel in self.fail_channels:
            return PublishResult(success=False, error=f"{channel} is unavailable")
        if attempt <= self.failures_before_success:
            return PublishResult(success=False, error=f"{channel} attempt {attempt} failed")
        return PublishResult(success=True, external_id=f"mock-{channel}-{content.id}-{attempt}")

    def check_health(self) -> HealthStatus:
        if self.healthy:
            return HealthStatus(healthy=True, message="Mock API connection successful")
        return HealthStatus(healthy=False, message="Mock API connection failed")


# ============================================================
# WEBHOOK GATEWAY
# ============================================================

def sign_payload(payload: dict, secret: str) -> str:
    """Generate HMAC-SHA256 signature for webhook payload"""
    payload_bytes = json.dumps(payload, sort_keys=True).encode("utf-8")
    signature = hmac.new(
        secret.encode("utf-8"),
        payload_bytes,
        hashlib.sha256
    ).hexdigest()
    return f"sha256={signature}"


# Client errors that may succeed when retried
RETRYABLE_STATUS = {408, 425, 429}


class WebhookGateway(ChannelGateway):
    """
    Publishes through an external workflow engine (e.g. n8n) over HTTP.

    POST {base_url}/webhook/publish with the channel and the content, GET
    {base_url}/webhook/health for connection tests.
    """

    PUBLISH_PATH = "/webhook/publish"
    HEALTH_PATH = "/webhook/health"

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        secret: str = "",
        default_timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        if not base_url:
            raise GatewayError("Webhook gateway requires a base URL", permanent=True)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.secret = secret
        self.default_timeout = default_timeout
        self.session = session or requests.Session()

    def _headers(self, payload: Optional[dict] = None) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-KEY"] = self.api_key
        if payload is not None and self.secret:
            headers["X-CampaignHQ-Signature"] = sign_payload(payload, self.secret)
        return headers

    def publish(self, channel: str, content: Content, timeout: Optional[float] = None) -> PublishResult:
        payload = {
            "channel": channel,
            "content": content_to_dict(content),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        url = f"{self.base_url}{self.PUBLISH_PATH}"
        try:
            response = self.session.post(
                url,
                json=payload,
                headers=self._headers(payload),
                timeout=timeout or self.default_timeout,
            )
        except requests.Timeout:
            logger.warning("Publish timed out", channel=channel, content_id=content.id)
            return PublishResult(success=False, error="timeout")
        except requests.RequestException as e:
            logger.error("Publish request failed", error=e, channel=channel, content_id=content.id)
            return PublishResult(success=False, error=str(e))

        if 200 <= response.status_code < 300:
            external_id = None
            try:
                body = response.json()
                if isinstance(body, dict):
                    external_id = body.get("externalId") or body.get("external_id") or body.get("id")
            except ValueError:
                pass
            logger.info("Published", channel=channel, content_id=content.id, external_id=external_id)
            return PublishResult(success=True, external_id=str(external_id) if external_id else None)

        permanent = 400 <= response.status_code < 500 and response.status_code not in RETRYABLE_STATUS
        logger.warning(
            "Publish rejected",
            channel=channel,
            content_id=content.id,
            status_code=response.status_code,
            permanent=permanent,
        )
        return PublishResult(
            success=False,
            error=f"HTTP {response.status_code}",
            permanent=permanent,
        )

    def check_health(self) -> HealthStatus:
        url = f"{self.base_url}{self.HEALTH_PATH}"
        try:
            response = self.session.get(url, headers=self._headers(), timeout=self.default_timeout)
        except requests.RequestException as e:
            return HealthStatus(healthy=False, message=f"Connection failed: {e}")
        if response.ok:
            message = "Connection successful"
            try:
                body = response.json()
                if isinstance(body, dict) and body.get("message"):
                    message = str(body["message"])
            except ValueError:
                pass
            return HealthStatus(healthy=True, message=message)
        return HealthStatus(healthy=False, message=f"API request failed: {response.status_code} {response.reason}")


def build_gateway(settings) -> ChannelGateway:
    """Create the gateway selected by ``settings.gateway_mode``."""
    mode = settings.gateway_mode.lower()
    if mode == "mock":
        return MockGateway()
    if mode == "webhook":
        return WebhookGateway(
            base_url=settings.gateway_base_url,
            api_key=settings.gateway_api_key,
            secret=settings.gateway_webhook_secret,
            default_timeout=settings.dispatch_timeout_seconds,
        )
    raise GatewayError(f"Unknown gateway mode: {settings.gateway_mode}", permanent=True)
