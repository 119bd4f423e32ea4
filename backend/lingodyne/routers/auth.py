from datetime import date, datetime, timedelta, timezone
from typing import Optional, List
import logging
import re
import secrets
import uuid

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from ..settings import settings
from sqlalchemy.orm import Session
from ..db import get_db
from ..email_client import EmailClient, get_email_client
from ..access import Capability, check_capability, get_user_roles
from ..errors import Conflict, Forbidden, NotFound, Unauthenticated, ValidationFailed
from ..models import AuthUser, AuthSession, EmailVerification, PasswordReset

router = APIRouter(prefix="/auth", tags=["auth"])
user_router = APIRouter(prefix="/user", tags=["user"])

logger = logging.getLogger(__name__)
logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

_EMAIL_RX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8
MIN_AGE_YEARS = 16


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class User(BaseModel):
	id: str
	email: str
	first_name: str
	last_name: str


def _bcrypt_safe(password: str) -> str:
	# bcrypt only looks at the first 72 bytes
	password_bytes = password.encode('utf-8')
	if len(password_bytes) > 72:
		password_bytes = password_bytes[:72]
	return password_bytes.decode('utf-8', errors='ignore')


def hash_password(password: str) -> str:
	return pwd_context.hash(_bcrypt_safe(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	return pwd_context.verify(_bcrypt_safe(plain_password), hashed_password)


def generate_otp() -> str:
	return str(100000 + secrets.randbelow(900000))


def generate_reset_token() -> str:
	return secrets.token_hex(32)


def _normalize_email(email: Optional[str]) -> str:
	return (email or "").strip().lower()


def _age_on(birth: date, today: date) -> int:
	years = today.year - birth.year
	if (today.month, today.day) < (birth.month, birth.day):
		years -= 1
	return years


def authenticate_user(db: Session, email: str, password: str) -> Optional[AuthUser]:
	user_row = db.query(AuthUser).filter(AuthUser.email == _normalize_email(email)).first()
	if user_row and verify_password(password, user_row.password_hash):
		return user_row
	return None


def _resolve_expiry(expires_delta: Optional[timedelta]) -> datetime:
	delta = expires_delta
	if delta is None:
		minutes = getattr(settings, "access_token_expire_minutes", None)
		if isinstance(minutes, int) and minutes > 0:
			delta = timedelta(minutes=minutes)
		else:
			delta = timedelta(days=7)
	now = datetime.now(timezone.utc)
	try:
		return now + delta
	except OverflowError:
		# Cap at far future but within datetime bounds
		return datetime.max.replace(tzinfo=timezone.utc)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	expire = _resolve_expiry(expires_delta)
	to_encode.update({"exp": expire})
	encoded_jwt = jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
	return encoded_jwt


def _store_otp(db: Session, email: str) -> str:
	otp = generate_otp()
	db.query(EmailVerification).filter(EmailVerification.email == email).delete(synchronize_session=False)
	db.add(EmailVerification(
		email=email,
		otp_code=otp,
		expires_at=datetime.utcnow() + timedelta(minutes=settings.otp_expire_minutes),
	))
	return otp


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	user = authenticate_user(db, form_data.username, form_data.password)
	if not user:
		raise Unauthenticated("Invalid email or password")
	if not user.email_verified:
		raise Unauthenticated("Please verify your email before logging in")
	# Create a new session id (jti) and persist server-side
	session_id = uuid.uuid4().hex
	access_token = create_access_token({"sub": user.id, "email": user.email, "jti": session_id})
	db.add(AuthSession(session_id=session_id, user_id=user.id))
	db.commit()
	logger.info("User %s logged in", user.email)
	return Token(access_token=access_token)


def _decode_token(token: str) -> tuple[str, str]:
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		raise Unauthenticated("Invalid or expired token")
	user_id: str | None = payload.get("sub")
	jti: str | None = payload.get("jti")
	if user_id is None or jti is None:
		raise Unauthenticated("Invalid token")
	return user_id, jti


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
	user_id, jti = _decode_token(token)
	# The session row must still exist so tokens can be revoked (logout, admin action)
	row = db.get(AuthSession, jti)
	if not row or row.user_id != user_id:
		raise Unauthenticated("Session expired or revoked")
	user_row = db.get(AuthUser, user_id)
	if user_row is None:
		raise Unauthenticated("User not found")
	if not user_row.email_verified:
		raise Forbidden("Email not verified")
	row.last_activity_at = datetime.utcnow()
	db.commit()
	return User(id=user_row.id, email=user_row.email, first_name=user_row.first_name, last_name=user_row.last_name)


def require_capability(capability: Capability):
	"""Dependency factory: the current user, provided they hold *capability*."""
	def dependency(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> User:
		check_capability(db, user.id, capability).enforce()
		return user
	return dependency


require_reviewer = require_capability(Capability.REVIEW)
require_admin = require_capability(Capability.ADMIN)


@router.get("/me", response_model=User)
async def me(user: User = Depends(get_current_user)):
	return user


@router.post("/logout")
async def logout(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)):
	_, jti = _decode_token(token)
	db.query(AuthSession).filter(AuthSession.session_id == jti).delete(synchronize_session=False)
	db.commit()
	return {"ok": True}


class SignupRequest(BaseModel):
	first_name: str
	last_name: str
	email: str
	date_of_birth: date
	password: str


@router.post("/signup", status_code=201)
async def signup(req: SignupRequest, db: Session = Depends(get_db), mailer: EmailClient = Depends(get_email_client)):
	first_name = (req.first_name or "").strip()
	last_name = (req.last_name or "").strip()
	email = _normalize_email(req.email)
	if not first_name or not last_name or not email or not req.password:
		raise ValidationFailed("All fields are required")
	if not _EMAIL_RX.match(email):
		raise ValidationFailed("Invalid email format")
	if len(req.password) < MIN_PASSWORD_LENGTH:
		raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
	if _age_on(req.date_of_birth, date.today()) < MIN_AGE_YEARS:
		raise ValidationFailed(f"You must be at least {MIN_AGE_YEARS} years old")

	existing = db.query(AuthUser).filter(AuthUser.email == email).first()
	if existing and existing.email_verified:
		raise Conflict("User already exists with this email")
	if existing:
		# Unverified account: refresh the details and send a new code
		existing.first_name = first_name
		existing.last_name = last_name
		existing.date_of_birth = req.date_of_birth
		existing.password_hash = hash_password(req.password)
	else:
		db.add(AuthUser(
			email=email,
			first_name=first_name,
			last_name=last_name,
			date_of_birth=req.date_of_birth,
			password_hash=hash_password(req.password),
		))
	otp = _store_otp(db, email)
	db.commit()
	await mailer.send_verification_email(email, otp, first_name)
	return {"message": "Account created successfully. Please check your email for verification code.", "email": email}


class VerifyEmailRequest(BaseModel):
	email: str
	otp: str


@router.post("/verify-email")
async def verify_email(req: VerifyEmailRequest, db: Session = Depends(get_db)):
	email = _normalize_email(req.email)
	record = (
		db.query(EmailVerification)
		.filter(
			EmailVerification.email == email,
			EmailVerification.otp_code == req.otp.strip(),
			EmailVerification.verified.is_(False),
		)
		.order_by(EmailVerification.created_at.desc())
		.first()
	)
	if record is None:
		raise ValidationFailed("Invalid verification code")
	if datetime.utcnow() > record.expires_at:
		raise ValidationFailed("Verification code has expired")
	user = db.query(AuthUser).filter(AuthUser.email == email).first()
	if user is None:
		raise NotFound("User not found")
	record.verified = True
	user.email_verified = True
	db.commit()
	return {"message": "Email verified successfully"}


class EmailOnlyRequest(BaseModel):
	email: str


@router.post("/resend-otp")
async def resend_otp(req: EmailOnlyRequest, db: Session = Depends(get_db), mailer: EmailClient = Depends(get_email_client)):
	email = _normalize_email(req.email)
	user = db.query(AuthUser).filter(AuthUser.email == email).first()
	if user is None:
		raise NotFound("User not found")
	if user.email_verified:
		raise ValidationFailed("Email is already verified")
	otp = _store_otp(db, email)
	db.commit()
	await mailer.send_verification_email(email, otp, user.first_name)
	return {"message": "Verification code sent successfully"}


_RESET_SENT = "If an account with that email exists, we have sent a password reset link."


@router.post("/forgot-password")
async def forgot_password(req: EmailOnlyRequest, db: Session = Depends(get_db), mailer: EmailClient = Depends(get_email_client)):
	email = _normalize_email(req.email)
	user = db.query(AuthUser).filter(AuthUser.email == email).first()
	if user is None:
		# Same answer whether or not the account exists
		return {"message": _RESET_SENT}
	if not user.email_verified:
		raise ValidationFailed("Please verify your email first")
	token = generate_reset_token()
	db.query(PasswordReset).filter(PasswordReset.user_id == user.id).delete(synchronize_session=False)
	db.add(PasswordReset(
		user_id=user.id,
		email=email,
		reset_token=token,
		expires_at=datetime.utcnow() + timedelta(minutes=settings.reset_token_expire_minutes),
	))
	db.commit()
	await mailer.send_password_reset_email(email, token, user.first_name)
	return {"message": _RESET_SENT}


class ResetPasswordRequest(BaseModel):
	token: str
	password: str


@router.post("/reset-password")
async def reset_password(req: ResetPasswordRequest, db: Session = Depends(get_db)):
	if len(req.password or "") < MIN_PASSWORD_LENGTH:
		raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
	record = db.query(PasswordReset).filter(PasswordReset.reset_token == req.token, PasswordReset.used.is_(False)).first()
	if record is None or datetime.utcnow() > record.expires_at:
		raise ValidationFailed("Invalid or expired reset token")
	user = db.get(AuthUser, record.user_id)
	if user is None:
		raise NotFound("User not found")
	user.password_hash = hash_password(req.password)
	record.used = True
	# Log out every existing session
	db.query(AuthSession).filter(AuthSession.user_id == user.id).delete(synchronize_session=False)
	db.commit()
	return {"message": "Password updated successfully"}


class RolesResponse(BaseModel):
	roles: List[str]


@user_router.get("/roles", response_model=RolesResponse)
async def my_roles(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return RolesResponse(roles=sorted(get_user_roles(db, user.id)))
