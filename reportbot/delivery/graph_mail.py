"""E-mail delivery through the Microsoft Graph ``sendMail`` API."""

import base64
import time
from typing import Any, Sequence

import httpx
from loguru import logger

from reportbot.config.schema import DeliveryConfig
from reportbot.delivery.base import Attachment, DeliveryChannel
from reportbot.errors import TransportError

GRAPH_SCOPE = "https://graph.microsoft.com/.default"
GRAPH_API_BASE = "https://graph.microsoft.com/v1.0"
LOGIN_BASE = "https://login.microsoftonline.com"

# Refresh the token this many seconds before it actually expires.
_TOKEN_EXPIRY_SKEW_S = 60


class GraphMailChannel(DeliveryChannel):
    """
    Sends mail as ``sender_email`` using an Azure AD app registration.

    Authenticates with the OAuth2 client-credentials grant and caches the
    access token until shortly before it expires.
    """

    name = "graph_mail"

    def __init__(self, config: DeliveryConfig, client: httpx.AsyncClient | None = None):
        self.config = config
        self._client = client
        self._owns_client = client is None
        self._token: str | None = None
        self._token_expires_at = 0.0

    def is_configured(self) -> bool:
        cfg = self.config
        return bool(cfg.tenant_id and cfg.client_id and cfg.client_secret and cfg.sender_email)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout_s)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def send(
        self,
        recipients: list[str],
        subject: str,
        html_body: str,
        attachment: Attachment,
        inline_images: Sequence[Attachment] = (),
    ) -> None:
        if not self.is_configured():
            raise TransportError(
                "Graph mail is not configured - set delivery tenantId, clientId, "
                "clientSecret and senderEmail"
            )

        token = await self._get_access_token()
        payload = {
            "message": {
                "subject": subject,
                "body": {"contentType": "HTML", "content": html_body},
                "toRecipients": [{"emailAddress": {"address": r}} for r in recipients],
                "attachments": [_file_attachment(a) for a in (attachment, *inline_images)],
            },
            "saveToSentItems": True,
        }

        url = f"{GRAPH_API_BASE}/users/{self.config.sender_email}/sendMail"
        try:
            response = await self.client.post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.RequestError as e:
            raise TransportError(f"Failed to send email: {e}") from e

        if response.status_code >= 400:
            if response.status_code == 401:
                self._token = None
            raise TransportError(
                f"Failed to send email: {response.status_code} {response.reason_phrase} - {response.text}",
                status_code=response.status_code,
            )

        logger.info(f"Email '{subject}' sent to {len(recipients)} recipient(s)")

    async def _get_access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        cfg = self.config
        url = f"{LOGIN_BASE}/{cfg.tenant_id}/oauth2/v2.0/token"
        try:
            response = await self.client.post(
                url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": cfg.client_id,
                    "client_secret": cfg.client_secret,
                    "scope": GRAPH_SCOPE,
                },
            )
        except httpx.RequestError as e:
            raise TransportError(f"Failed to acquire access token: {e}") from e

        if response.status_code >= 400:
            raise TransportError(
                f"Failed to acquire access token: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )

        data: dict[str, Any] = response.json()
        token = data.get("access_token")
        if not token:
            raise TransportError("Failed to acquire access token: no access_token in response")

        self._token = token
        expires_in = int(data.get("expires_in", 3600))
        self._token_expires_at = time.monotonic() + max(0, expires_in - _TOKEN_EXPIRY_SKEW_S)
        logger.debug("Acquired Graph access token")
        return token


def _file_attachment(attachment: Attachment) -> dict[str, Any]:
    item: dict[str, Any] = {
        "@odata.type": "#microsoft.graph.fileAttachment",
        "name": attachment.name,
        "contentType": attachment.mime_type,
        "contentBytes": base64.b64encode(attachment.data).decode("ascii"),
    }
    if attachment.is_inline:
        item["isInline"] = True
        item["contentId"] = attachment.content_id
    return item
