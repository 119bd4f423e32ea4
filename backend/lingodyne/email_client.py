from __future__ import annotations
import logging
import httpx
from typing import Any, Dict, Optional
from .errors import DeliveryFailure
from .settings import settings

logger = logging.getLogger(__name__)


class EmailClient:
	"""Thin wrapper around the Resend HTTP API.

	With no API key configured the client runs in dry-run mode: messages are
	logged instead of sent, which is what local development and tests use.
	"""

	def __init__(self, api_key: Optional[str] = None, *, base_url: Optional[str] = None, sender: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
		self.api_key = api_key if api_key is not None else settings.resend_api_key
		self.base_url = base_url or settings.resend_base_url
		self.sender = sender or settings.email_from
		self.dry_run = not self.api_key
		self._client = httpx.AsyncClient(timeout=15, transport=transport)

	async def send(self, to: str, subject: str, html: str) -> Optional[str]:
		"""Send one message; returns the provider message id (None in dry-run)."""
		if self.dry_run:
			logger.info("E-mail delivery disabled, skipping %r to %s", subject, to)
			return None
		payload: Dict[str, Any] = {"from": self.sender, "to": [to], "subject": subject, "html": html}
		headers = {"Authorization": f"Bearer {self.api_key}"}
		try:
			r = await self._client.post(self.base_url, headers=headers, json=payload)
			r.raise_for_status()
		except httpx.HTTPStatusError as http_err:
			logger.error("Resend rejected %r to %s: %s", subject, to, http_err.response.text)
			raise DeliveryFailure() from http_err
		except httpx.RequestError as net_err:
			logger.error("Resend unreachable while sending %r to %s: %s", subject, to, net_err)
			raise DeliveryFailure() from net_err
		try:
			return r.json().get("id")
		except ValueError:
			return None

	async def send_verification_email(self, to: str, otp: str, first_name: str) -> Optional[str]:
		subject = f"Verify Your Email - {settings.app_name}"
		html = (
			f"<h2>Welcome to {settings.app_name}, {first_name}!</h2>"
			"<p>Your verification code is:</p>"
			f"<p style=\"font-size:28px;letter-spacing:6px;font-weight:bold\">{otp}</p>"
			f"<p>The code expires in {settings.otp_expire_minutes} minutes.</p>"
		)
		return await self.send(to, subject, html)

	async def send_password_reset_email(self, to: str, token: str, first_name: str) -> Optional[str]:
		subject = f"Reset Your Password - {settings.app_name}"
		link = f"{settings.app_base_url.rstrip('/')}/reset-password?token={token}"
		html = (
			f"<h2>Hi {first_name},</h2>"
			"<p>We received a request to reset your password.</p>"
			f"<p><a href=\"{link}\">Reset password</a></p>"
			f"<p>The link expires in {settings.reset_token_expire_minutes} minutes. "
			"If you did not ask for this, ignore this e-mail.</p>"
		)
		return await self.send(to, subject, html)

	async def aclose(self) -> None:
		await self._client.aclose()


async def get_email_client():
	client = EmailClient()
	try:
		yield client
	finally:
		await client.aclose()
