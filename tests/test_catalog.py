from __future__ import annotations

from lingodyne import models


def _demo_template(db, *, with_questions=True):
	template = models.TestTemplate(
		title="English demo",
		language="English",
		test_type="demo",
		duration_minutes=10,
		version_code="DEMO",
	)
	if with_questions:
		word = models.Question(section="reading", subsection="correct_word", prompt="Pick the right word", options=["their", "there"], correct_answer="there", is_auto_gradable=True)
		talk = models.Question(section="speaking", subsection="opinion", prompt="What do you think about remote work?", max_score=10)
		clip = models.Question(section="listening", subsection="dialogue", prompt="Where are they going?", options=["park", "shop"], correct_answer="park", is_auto_gradable=True)
		for order, question in enumerate((word, talk, clip), start=1):
			template.questions.append(models.TemplateQuestion(question=question, section=question.section, question_order=order))
	db.add(template)
	db.commit()
	return template.id


def test_demo_questions_are_public_and_keyless(client, db):
	_demo_template(db)
	resp = client.get("/demo-test/questions")
	assert resp.status_code == 200, resp.text
	body = resp.json()
	assert body["duration_minutes"] == 10
	assert [q["question_type"] for q in body["questions"]] == ["mcq", "speaking", "listening_mcq"]
	assert [q["question_order"] for q in body["questions"]] == [1, 2, 3]
	assert all("correct_answer" not in q for q in body["questions"])


def test_demo_explicit_parameters(client, db):
	_demo_template(db)
	resp = client.get("/demo-test/questions", params={"lang": "english", "type": "demo", "version": "DEMO"})
	assert resp.status_code == 200
	assert len(resp.json()["questions"]) == 3


def test_demo_rejects_other_tests(client, db):
	_demo_template(db)
	for params in ({"type": "full"}, {"lang": "French"}, {"version": "v1"}):
		resp = client.get("/demo-test/questions", params=params)
		assert resp.status_code == 400
		assert resp.json()["code"] == "ValidationFailed"


def test_demo_missing_template_or_questions(client, db):
	missing = client.get("/demo-test/questions")
	assert missing.status_code == 404
	assert missing.json()["error"] == "Demo test configuration not found."

	_demo_template(db, with_questions=False)
	empty = client.get("/demo-test/questions")
	assert empty.status_code == 404
	assert empty.json()["error"] == "No questions configured for this demo test."


def test_demo_template_created_by_admin(client, admin):
	payload = {"title": "English demo", "language": "English", "test_type": "demo", "duration_minutes": 10, "version_code": "DEMO"}
	created = client.post("/admin/test-templates", json=payload, headers=admin.headers)
	assert created.status_code == 201
	assert created.json()["template"]["version_code"] == "DEMO"
	# Exists but has no questions yet
	assert client.get("/demo-test/questions").status_code == 404
