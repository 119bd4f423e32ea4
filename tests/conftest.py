from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from lingodyne import models
from lingodyne.access import ensure_roles_exist, grant_role
from lingodyne.db import Base, get_db
from lingodyne.email_client import EmailClient, get_email_client
from lingodyne.main import app
from lingodyne.routers.auth import hash_password

PASSWORD = "correct-horse-battery"


@pytest.fixture
def engine(tmp_path):
	eng = create_engine(
		f"sqlite:///{tmp_path / 'lingodyne-test.db'}",
		connect_args={"check_same_thread": False},
		future=True,
	)
	Base.metadata.create_all(bind=eng)
	yield eng
	eng.dispose()


@pytest.fixture
def session_factory(engine):
	return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


@pytest.fixture
def db(session_factory):
	session = session_factory()
	ensure_roles_exist(session)
	session.commit()
	yield session
	session.close()


@pytest.fixture
def client(session_factory, db):
	def _get_db():
		session = session_factory()
		try:
			yield session
		finally:
			session.close()

	async def _get_email_client():
		# Empty key forces dry-run regardless of the environment
		mailer = EmailClient(api_key="")
		try:
			yield mailer
		finally:
			await mailer.aclose()

	app.dependency_overrides[get_db] = _get_db
	app.dependency_overrides[get_email_client] = _get_email_client
	# Not used as a context manager so startup hooks stay off the real database
	yield TestClient(app)
	app.dependency_overrides.clear()


def create_user(db, email: str, *roles: str, verified: bool = True) -> str:
	user = models.AuthUser(
		email=email,
		first_name=email.split("@")[0].title(),
		last_name="Tester",
		password_hash=hash_password(PASSWORD),
		email_verified=verified,
	)
	db.add(user)
	db.flush()
	for role in roles:
		grant_role(db, user.id, role)
	db.commit()
	return user.id


def login(client, email: str, password: str = PASSWORD) -> dict:
	resp = client.post("/auth/token", data={"username": email, "password": password})
	assert resp.status_code == 200, resp.text
	return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def build_template(db, *, pass_threshold=None) -> SimpleNamespace:
	"""Two auto-graded reading questions worth 5 each and one writing task worth 10."""
	template = models.TestTemplate(
		title="French B1 practice",
		language="french",
		test_type="practice",
		duration_minutes=60,
		pass_threshold=pass_threshold,
	)
	capital = models.Question(section="reading", prompt="Capital of France?", correct_answer="Paris", is_auto_gradable=True, max_score=5)
	river = models.Question(section="reading", prompt="River through Paris?", correct_answer="Seine", is_auto_gradable=True, max_score=5)
	essay = models.Question(section="writing", prompt="Describe your weekend.", is_auto_gradable=False, max_score=10)
	# Writing first on purpose: reviewers still get reading questions first
	for order, question in enumerate((essay, capital, river), start=1):
		template.questions.append(models.TemplateQuestion(question=question, section=question.section, question_order=order))
	db.add(template)
	db.commit()
	return SimpleNamespace(id=template.id, capital=capital.id, river=river.id, essay=essay.id)


@pytest.fixture
def template(db):
	return build_template(db)


@pytest.fixture
def learner(client, db):
	user_id = create_user(db, "learner@example.com", "learner")
	return SimpleNamespace(id=user_id, email="learner@example.com", headers=login(client, "learner@example.com"))


@pytest.fixture
def reviewer(client, db):
	user_id = create_user(db, "reviewer@example.com", "reviewer")
	return SimpleNamespace(id=user_id, email="reviewer@example.com", headers=login(client, "reviewer@example.com"))


@pytest.fixture
def admin(client, db):
	user_id = create_user(db, "admin@example.com", "admin")
	return SimpleNamespace(id=user_id, email="admin@example.com", headers=login(client, "admin@example.com"))


@pytest.fixture
def user_test_id(client, learner, template):
	resp = client.post("/user-tests/assign", json={"test_template_id": template.id}, headers=learner.headers)
	assert resp.status_code == 201, resp.text
	return resp.json()["user_test"]["id"]
