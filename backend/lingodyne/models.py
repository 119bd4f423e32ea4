from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from .db import Base


def _new_id() -> str:
	return str(uuid.uuid4())


class AuthUser(Base):
	__tablename__ = "users"
	id = Column(String(36), primary_key=True, default=_new_id)
	email = Column(String(256), unique=True, index=True, nullable=False)
	first_name = Column(String(128), nullable=False)
	last_name = Column(String(128), nullable=False)
	date_of_birth = Column(Date, nullable=True)
	password_hash = Column(String(256), nullable=False)
	email_verified = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	# JWT "jti" claim; a token is only valid while its row exists
	session_id = Column(String(64), primary_key=True)
	user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class EmailVerification(Base):
	__tablename__ = "email_verifications"
	id = Column(Integer, primary_key=True, autoincrement=True)
	email = Column(String(256), index=True, nullable=False)
	otp_code = Column(String(6), nullable=False)
	expires_at = Column(DateTime, nullable=False)
	verified = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class PasswordReset(Base):
	__tablename__ = "password_resets"
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
	email = Column(String(256), nullable=False)
	reset_token = Column(String(64), unique=True, index=True, nullable=False)
	expires_at = Column(DateTime, nullable=False)
	used = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Role(Base):
	__tablename__ = "roles"
	id = Column(Integer, primary_key=True, autoincrement=True)
	name = Column(String(32), unique=True, nullable=False)


class UserRole(Base):
	__tablename__ = "user_roles"
	user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
	role_id = Column(Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class TestTemplate(Base):
	__tablename__ = "test_templates"
	id = Column(String(36), primary_key=True, default=_new_id)
	title = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	language = Column(String(64), index=True, nullable=False)
	# demo | practice | full
	test_type = Column(String(16), nullable=False)
	duration_minutes = Column(Integer, nullable=False)
	price = Column(Float, default=0.0, nullable=False)
	is_active = Column(Boolean, default=True, nullable=False)
	version_code = Column(String(16), default="v1", nullable=False)
	# Percentage needed to pass; NULL falls back to settings.default_pass_threshold
	pass_threshold = Column(Float, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	questions = relationship(
		"TemplateQuestion",
		back_populates="template",
		order_by="TemplateQuestion.question_order",
		cascade="all, delete-orphan",
	)


class Question(Base):
	__tablename__ = "questions"
	id = Column(String(36), primary_key=True, default=_new_id)
	# reading | writing | speaking | listening
	section = Column(String(16), nullable=False)
	subsection = Column(String(64), nullable=True)
	prompt = Column(Text, nullable=False)
	options = Column(JSON, nullable=True)
	correct_answer = Column(Text, nullable=True)
	audio_url = Column(String(512), nullable=True)
	image_url = Column(String(512), nullable=True)
	language = Column(String(64), nullable=True)
	difficulty = Column(String(16), nullable=True)
	is_auto_gradable = Column(Boolean, default=False, nullable=False)
	max_score = Column(Float, default=1.0, nullable=False)
	time_limit_seconds = Column(Integer, nullable=True)
	instructions = Column(Text, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class TemplateQuestion(Base):
	__tablename__ = "template_questions"
	__table_args__ = (UniqueConstraint("test_template_id", "question_id", name="uq_template_question"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	test_template_id = Column(String(36), ForeignKey("test_templates.id", ondelete="CASCADE"), index=True, nullable=False)
	question_id = Column(String(36), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
	section = Column(String(16), nullable=False)
	question_order = Column(Integer, default=0, nullable=False)

	template = relationship("TestTemplate", back_populates="questions")
	question = relationship("Question", lazy="joined")


class UserTest(Base):
	__tablename__ = "user_tests"
	id = Column(String(36), primary_key=True, default=_new_id)
	user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
	test_template_id = Column(String(36), ForeignKey("test_templates.id"), index=True, nullable=False)
	status = Column(String(16), default="not_started", index=True, nullable=False)
	started_at = Column(DateTime, nullable=True)
	submitted_at = Column(DateTime, nullable=True)
	reviewed_at = Column(DateTime, nullable=True)
	final_score = Column(Float, nullable=True)
	max_possible_score = Column(Float, nullable=True)
	is_passed = Column(Boolean, nullable=True)
	certificate_url = Column(String(512), nullable=True)
	current_section = Column(String(16), nullable=True)
	current_question_index = Column(Integer, default=0, nullable=False)
	time_remaining_seconds = Column(Integer, nullable=True)
	# Bumped on every UPDATE; a stale writer gets StaleDataError
	version = Column(Integer, default=1, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	__mapper_args__ = {"version_id_col": version}

	template = relationship("TestTemplate", lazy="joined")
	user = relationship("AuthUser", lazy="joined")
	answers = relationship("TestAnswer", back_populates="user_test", cascade="all, delete-orphan")
	reviews = relationship("AdminReview", back_populates="user_test", cascade="all, delete-orphan")


class TestAnswer(Base):
	__tablename__ = "test_answers"
	__table_args__ = (UniqueConstraint("user_test_id", "question_id", name="uq_answer_test_question"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_test_id = Column(String(36), ForeignKey("user_tests.id", ondelete="CASCADE"), index=True, nullable=False)
	question_id = Column(String(36), ForeignKey("questions.id"), nullable=False)
	section = Column(String(16), nullable=False)
	answer_text = Column(Text, nullable=True)
	audio_url = Column(String(512), nullable=True)
	is_correct = Column(Boolean, nullable=True)
	auto_score = Column(Float, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	user_test = relationship("UserTest", back_populates="answers")


class AdminReview(Base):
	__tablename__ = "admin_reviews"
	__table_args__ = (UniqueConstraint("user_test_id", "question_id", name="uq_review_test_question"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_test_id = Column(String(36), ForeignKey("user_tests.id", ondelete="CASCADE"), index=True, nullable=False)
	question_id = Column(String(36), ForeignKey("questions.id"), nullable=False)
	reviewer_id = Column(String(36), ForeignKey("users.id"), nullable=False)
	score = Column(Float, nullable=False)
	max_score = Column(Float, nullable=True)
	feedback = Column(Text, nullable=True)
	reviewed_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	user_test = relationship("UserTest", back_populates="reviews")
