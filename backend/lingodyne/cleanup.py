from __future__ import annotations
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import delete, or_
from sqlalchemy.orm import Session

from .models import AuthSession, EmailVerification, PasswordReset
from .settings import settings


def purge_expired(db: Session, now: Optional[datetime] = None) -> int:
	"""Drop expired one-time codes, used reset tokens and idle sessions."""
	now = now or datetime.utcnow()
	idle_threshold = now - timedelta(days=settings.session_retention_days)
	removed = 0

	res = db.execute(delete(EmailVerification).where(EmailVerification.expires_at < now))
	removed += res.rowcount or 0

	res = db.execute(delete(PasswordReset).where(or_(PasswordReset.expires_at < now, PasswordReset.used.is_(True))))
	removed += res.rowcount or 0

	# Tokens tied to these sessions stop working on the next request
	res = db.execute(delete(AuthSession).where(AuthSession.last_activity_at < idle_threshold))
	removed += res.rowcount or 0

	db.commit()
	return removed
