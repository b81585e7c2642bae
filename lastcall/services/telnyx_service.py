"""
Telnyx Service - outbound SMS through the Telnyx v2 Messaging API
"""
import httpx
import logging
from typing import Optional, Dict, Any
from dataclasses import dataclass

from ..config import settings
from ..core.logger import mask_phone

logger = logging.getLogger(__name__)


class TelnyxError(Exception):
    """Base Telnyx error"""
    def __init__(self, message: str, status_code: int = None, code: str = None, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class TelnyxConnectionError(TelnyxError):
    """Network failure or timeout talking to Telnyx"""
    pass


class TelnyxMessageError(TelnyxError):
    """Telnyx rejected the message"""
    pass


@dataclass
class TelnyxConfig:
    """Telnyx client configuration"""
    base_url: str = "https://api.telnyx.com"
    api_key: Optional[str] = None
    timeout: float = 15.0


class TelnyxService:
    """
    Client for the Telnyx Messaging API.

    One shared httpx.AsyncClient, created lazily and closed on shutdown.
    """

    def __init__(self, config: TelnyxConfig = None, transport: httpx.AsyncBaseTransport = None):
        self.config = config or TelnyxConfig()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get HTTP client (lazy initialization)"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers=self.headers,
                timeout=self.config.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, endpoint: str, json_data: dict = None) -> Dict[str, Any]:
        """
        Perform a request against the Telnyx API.

        Raises:
            TelnyxConnectionError: connection failure or timeout
            TelnyxMessageError: 4xx/5xx response
        """
        client = await self._get_client()

        try:
            response = await client.request(method=method, url=endpoint, json=json_data)
        except httpx.TimeoutException as e:
            logger.error(f"Telnyx timeout: {e}")
            raise TelnyxConnectionError(message="Telnyx request timeout", details={"error": str(e)})
        except httpx.TransportError as e:
            logger.error(f"Telnyx connection error: {e}")
            raise TelnyxConnectionError(
                message=f"Cannot connect to Telnyx at {self.config.base_url}",
                details={"error": str(e)},
            )

        logger.debug(f"Telnyx {method} {endpoint} -> {response.status_code}")

        if response.status_code >= 400:
            detail = response.text
            code = None
            try:
                errors = response.json().get("errors") or []
                if errors:
                    detail = errors[0].get("detail") or errors[0].get("title") or detail
                    code = errors[0].get("code")
            except ValueError:
                pass

            logger.error(f"Telnyx API error: {response.status_code} - {detail}")
            raise TelnyxMessageError(
                message=f"Telnyx API error: {detail}",
                status_code=response.status_code,
                code=code,
                details={"endpoint": endpoint, "response": detail},
            )

        try:
            return response.json()
        except ValueError:
            return {"raw": response.text}

    async def send_message(
        self,
        to: str,
        from_: str,
        text: str,
        messaging_profile_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send one SMS.

        Returns:
            {"id": provider message id, "status": provider status for the recipient}
        """
        payload = {"from": from_, "to": to, "text": text}
        if messaging_profile_id:
            payload["messaging_profile_id"] = messaging_profile_id

        result = await self._request("POST", "/v2/messages", json_data=payload)
        data = result.get("data") or {}
        recipients = data.get("to") or [{}]
        status = recipients[0].get("status", "queued")

        logger.info(f"[SMS] Sent to {mask_phone(to)}: id={data.get('id')} status={status}")
        return {"id": data.get("id"), "status": status}


_telnyx_service: Optional[TelnyxService] = None


def get_telnyx_service() -> TelnyxService:
    """Get Telnyx service singleton"""
    global _telnyx_service
    if _telnyx_service is None:
        _telnyx_service = TelnyxService(TelnyxConfig(
            base_url=settings.telnyx_api_url,
            api_key=settings.telnyx_api_key,
            timeout=settings.telnyx_timeout,
        ))
    return _telnyx_service


async def close_telnyx_service():
    global _telnyx_service
    if _telnyx_service is not None:
        await _telnyx_service.close()
        _telnyx_service = None
