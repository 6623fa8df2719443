"""Microsoft Graph email client for sending invoice emails.

API docs: https://learn.microsoft.com/graph/api/user-sendmail
"""

import logging
import time
from dataclasses import dataclass

import httpx

from backoffice.settings import settings

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
TOKEN_URL_TEMPLATE = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"

# Refresh tokens slightly before they expire
TOKEN_EXPIRY_MARGIN_SECONDS = 60


@dataclass
class EmailSendResult:
    """Outcome of an email send."""

    success: bool
    error: str | None = None


class GraphEmailError(Exception):
    """Base exception for Microsoft Graph email errors."""
    pass


class GraphTokenError(GraphEmailError):
    """Token endpoint returned an unusable response."""
    pass


class GraphEmailClient:
    """Client for sending mail as a shared mailbox via Microsoft Graph.

    Uses the OAuth client-credentials flow; the access token is cached on
    the instance until shortly before it expires.
    """

    def __init__(
        self,
        tenant_id: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        sender_email: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize Graph client.

        Args:
            tenant_id: Azure AD tenant ID (defaults to settings)
            client_id: App registration client ID (defaults to settings)
            client_secret: App registration secret (defaults to settings)
            sender_email: Mailbox to send from (defaults to settings)
            http_client: Optional shared httpx client
        """
        self.tenant_id = tenant_id or settings.microsoft_tenant_id
        self.client_id = client_id or settings.microsoft_client_id
        self.client_secret = client_secret or settings.microsoft_client_secret
        self.sender_email = sender_email or settings.microsoft_user_email

        if not (self.tenant_id and self.client_id and self.client_secret and self.sender_email):
            raise ValueError("Microsoft Graph tenant, client credentials and sender email must be provided")

        self._http_client = http_client
        self._access_token: str | None = None
        self._token_expires_at = 0.0

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(url, **kwargs)
        async with httpx.AsyncClient(timeout=15.0) as client:
            return await client.post(url, **kwargs)

    async def _get_access_token(self) -> str:
        if self._access_token and time.monotonic() < self._token_expires_at:
            return self._access_token

        resp = await self._post(
            TOKEN_URL_TEMPLATE.format(tenant_id=self.tenant_id),
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "scope": GRAPH_SCOPE,
                "grant_type": "client_credentials",
            },
        )
        resp.raise_for_status()
        try:
            data = resp.json()
            token = data["access_token"]
            expires_in = int(data.get("expires_in", 3600))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise GraphTokenError(f"Invalid token response from Microsoft Graph: {e}") from e

        self._access_token = token
        self._token_expires_at = time.monotonic() + max(expires_in - TOKEN_EXPIRY_MARGIN_SECONDS, 0)
        return self._access_token

    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        cc: list[str] | None = None,
    ) -> EmailSendResult:
        """Send a plain-text email.

        Args:
            to: Primary recipient
            subject: Email subject
            body: Plain-text body
            cc: Additional recipients

        Returns:
            EmailSendResult; failures are reported, not raised
        """
        message = {
            "subject": subject,
            "body": {"contentType": "Text", "content": body},
            "toRecipients": [{"emailAddress": {"address": to}}],
        }
        if cc:
            message["ccRecipients"] = [{"emailAddress": {"address": address}} for address in cc]

        try:
            token = await self._get_access_token()
            resp = await self._post(
                f"{GRAPH_BASE_URL}/users/{self.sender_email}/sendMail",
                json={"message": message, "saveToSentItems": True},
                headers={"Authorization": f"Bearer {token}"},
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Graph sendMail failed with status {e.response.status_code}",
                extra={"to": to, "subject": subject},
            )
            return EmailSendResult(success=False, error=f"Graph API error {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.error(f"Graph sendMail request failed: {e}", extra={"to": to, "subject": subject})
            return EmailSendResult(success=False, error=str(e))
        except GraphTokenError as e:
            logger.error(str(e), extra={"to": to, "subject": subject})
            return EmailSendResult(success=False, error="Invalid token response from Microsoft Graph")

        logger.info("Email sent via Microsoft Graph", extra={"to": to, "cc_count": len(cc or []), "subject": subject})
        return EmailSendResult(success=True)
