"""
SMS reminders through an HTTP SMS gateway.

The gateway is an Android smartphone running an SMS gateway app
(capcom6/android-sms-gateway API): POST <base>/message with Basic auth and
{"phoneNumbers": [...], "message": "..."}.
"""
import base64
import logging
import time
from typing import Callable, Optional

import httpx

from ...application.ports.notification_channel import ReminderMessage, SendResult
from ...exceptions import ChannelPermanentFailure, ChannelTransientFailure, PhoneFormatInvalid
from ...templates.reminders import reminder_sms_text
from .phone import normalize_phone_number
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

GATEWAY_TIMEOUT_MESSAGE = "Gateway timeout - smartphone might be offline or unreachable"
GATEWAY_REFUSED_MESSAGE = "Cannot connect to SMS gateway - check if smartphone app is running and URL is correct"
GATEWAY_UNREACHABLE_MESSAGE = "SMS gateway unreachable - check network connection and smartphone"
GATEWAY_NOT_FOUND_MESSAGE = "SMS gateway URL not found - check SMS_GATEWAY_URL configuration"
GATEWAY_BAD_URL_MESSAGE = "SMS gateway URL is invalid - check SMS_GATEWAY_URL configuration"
NOT_CONFIGURED_MESSAGE = (
    "SMS gateway not configured. Please set SMS_GATEWAY_URL and SMS_GATEWAY_TOKEN in environment variables."
)


def describe_gateway_error(exc: BaseException) -> str:
    """User-facing, cause-specific message for a failed gateway call."""
    if isinstance(exc, httpx.TimeoutException):
        return GATEWAY_TIMEOUT_MESSAGE
    if isinstance(exc, (httpx.UnsupportedProtocol, httpx.InvalidURL)):
        return GATEWAY_BAD_URL_MESSAGE
    text = str(exc)
    lowered = text.lower()
    if isinstance(exc, httpx.ConnectError):
        if "refused" in lowered:
            return GATEWAY_REFUSED_MESSAGE
        if "name or service not known" in lowered or "nodename nor servname" in lowered \
                or "getaddrinfo" in lowered or "name resolution" in lowered:
            return GATEWAY_NOT_FOUND_MESSAGE
        if "unreachable" in lowered or "no route to host" in lowered:
            return GATEWAY_UNREACHABLE_MESSAGE
    return text or exc.__class__.__name__


class SmsGatewayChannel:
    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 10.0,
        retry_policy: Optional[RetryPolicy] = None,
        default_country_code: str = "39",
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.default_country_code = default_country_code
        self._client = client
        self._sleep = sleep

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.token)

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _headers(self) -> dict:
        basic = base64.b64encode(self.token.encode("utf-8")).decode("ascii")
        return {
            "Content-Type": "application/json",
            "Authorization": f"Basic {basic}",
        }

    def validate_recipient(self, recipient: str) -> str:
        return normalize_phone_number(recipient, self.default_country_code)

    def send(self, recipient: str, message: ReminderMessage) -> SendResult:
        return self.send_text(recipient, reminder_sms_text(message))

    def send_text(self, phone: str, text: str) -> SendResult:
        if not self.configured:
            logger.warning("SMS gateway not configured. Skipping SMS send.")
            return SendResult(success=False, error=NOT_CONFIGURED_MESSAGE)

        try:
            normalized = normalize_phone_number(phone, self.default_country_code)
        except PhoneFormatInvalid as e:
            logger.error(f"Invalid phone number: {e}")
            return SendResult(success=False, error=str(e))

        payload = {"phoneNumbers": [normalized], "message": text}
        logger.info(f"Sending SMS to {normalized} via gateway {self.base_url}")

        try:
            data = self.retry_policy.retrying(sleep=self._sleep)(self._post_message, payload)
        except (ChannelTransientFailure, ChannelPermanentFailure) as e:
            logger.error(f"Failed to send SMS to {normalized}: {e}")
            return SendResult(success=False, error=str(e))
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            error = describe_gateway_error(e)
            logger.error(f"Failed to send SMS to {normalized}: {error} ({e.__class__.__name__})")
            return SendResult(success=False, error=error)
        except Exception as e:
            logger.error(f"Unexpected error sending SMS to {normalized}: {e}", exc_info=True)
            return SendResult(success=False, error=str(e) or "Unknown error occurred while sending SMS")

        message_id = None
        if isinstance(data, dict):
            message_id = data.get("id") or data.get("messageId")
        logger.info(f"SMS sent successfully via gateway to {normalized}")
        return SendResult(success=True, message_id=str(message_id or f"gateway-{int(time.time() * 1000)}"))

    def _post_message(self, payload: dict):
        response = self.client.post(
            f"{self.base_url}/message",
            json=payload,
            headers=self._headers(),
            timeout=self.timeout,
        )
        if response.status_code >= 500 or response.status_code == 429:
            raise ChannelTransientFailure(f"Gateway error: {response.status_code} {response.reason_phrase}")
        if response.status_code >= 400:
            raise ChannelPermanentFailure(f"Gateway error: {response.status_code} {response.reason_phrase}")
        try:
            return response.json()
        except ValueError:
            # Some gateways answer with a plain text body
            return {"success": True, "message": response.text}

    def test_gateway(self) -> SendResult:
        """Reachability probe; any HTTP answer counts as reachable."""
        if not self.configured:
            return SendResult(success=False, error="SMS gateway not configured")
        try:
            response = self.client.get(f"{self.base_url}/", headers=self._headers(), timeout=5.0)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            error = describe_gateway_error(e)
            logger.error(f"SMS gateway test failed: {error}")
            return SendResult(success=False, error=error)
        if response.is_success:
            logger.info("SMS gateway is reachable and responding")
        else:
            logger.warning(f"SMS gateway responded with status {response.status_code}")
        return SendResult(success=True)
