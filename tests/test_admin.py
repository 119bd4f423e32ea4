from __future__ import annotations

from conftest import create_user, login


NEW_TEMPLATE = {
	"title": "Spanish A2 demo",
	"description": "Short taster",
	"language": "spanish",
	"test_type": "demo",
	"duration_minutes": 15,
	"pass_threshold": 50,
}


def test_admin_routes_need_admin_role(client, learner, reviewer):
	assert client.get("/admin/stats", headers=learner.headers).status_code == 403
	assert client.get("/admin/stats", headers=reviewer.headers).status_code == 403
	assert client.get("/admin/stats").status_code == 401


def test_template_crud_and_catalog(client, admin):
	created = client.post("/admin/test-templates", json=NEW_TEMPLATE, headers=admin.headers)
	assert created.status_code == 201, created.text
	template = created.json()["template"]
	assert template["pass_threshold"] == 50
	assert template["version_code"] == "v1"

	catalog = client.get("/test-templates").json()
	assert [t["id"] for t in catalog["test_templates"]] == [template["id"]]
	assert catalog["grouped_tests"]["spanish"]["demo"][0]["title"] == "Spanish A2 demo"
	assert catalog["grouped_tests"]["spanish"]["full"] == []

	updated = client.put(
		f"/admin/test-templates/{template['id']}",
		json={**NEW_TEMPLATE, "is_active": False},
		headers=admin.headers,
	)
	assert updated.status_code == 200
	assert client.get("/test-templates").json()["test_templates"] == []
	assert client.get(f"/test-templates/{template['id']}").status_code == 404

	assert client.delete(f"/admin/test-templates/{template['id']}", headers=admin.headers).status_code == 200
	assert client.get(f"/admin/test-templates/{template['id']}", headers=admin.headers).status_code == 404


def test_template_validation(client, admin):
	bad_type = client.post("/admin/test-templates", json={**NEW_TEMPLATE, "test_type": "marathon"}, headers=admin.headers)
	assert bad_type.status_code == 400
	bad_threshold = client.post("/admin/test-templates", json={**NEW_TEMPLATE, "pass_threshold": 120}, headers=admin.headers)
	assert bad_threshold.status_code == 400


def test_cannot_delete_template_in_use(client, admin, template, user_test_id):
	resp = client.delete(f"/admin/test-templates/{template.id}", headers=admin.headers)
	assert resp.status_code == 409


def test_questions_are_created_and_attached(client, admin):
	template_id = client.post("/admin/test-templates", json=NEW_TEMPLATE, headers=admin.headers).json()["template"]["id"]

	auto_without_key = client.post(
		"/admin/questions",
		json={"section": "reading", "prompt": "¿Capital de España?", "is_auto_gradable": True},
		headers=admin.headers,
	)
	assert auto_without_key.status_code == 400

	question = client.post(
		"/admin/questions",
		json={"section": "reading", "prompt": "¿Capital de España?", "is_auto_gradable": True, "correct_answer": "Madrid", "max_score": 2},
		headers=admin.headers,
	)
	assert question.status_code == 201, question.text
	question_id = question.json()["question"]["id"]

	attached = client.post(f"/admin/test-templates/{template_id}/questions", json={"question_id": question_id}, headers=admin.headers)
	assert attached.status_code == 201
	assert attached.json()["section"] == "reading"
	assert attached.json()["question_order"] == 1

	twice = client.post(f"/admin/test-templates/{template_id}/questions", json={"question_id": question_id}, headers=admin.headers)
	assert twice.status_code == 409
	assert client.get(f"/test-templates/{template_id}").json()["test_template"]["question_count"] == 1


def test_stats_and_role_grant(client, db, admin, template, user_test_id):
	stats = client.get("/admin/stats", headers=admin.headers).json()
	assert stats["total_tests"] == 1
	assert stats["pending_reviews"] == 0
	assert stats["total_questions"] == 3
	assert stats["total_users"] == 2

	newcomer = create_user(db, "newcomer@example.com")
	granted = client.post(f"/admin/users/{newcomer}/roles/reviewer", headers=admin.headers)
	assert granted.status_code == 201
	assert granted.json()["created"] is True
	roles = client.get("/user/roles", headers=login(client, "newcomer@example.com")).json()["roles"]
	assert roles == ["reviewer"]

	assert client.post(f"/admin/users/{newcomer}/roles/emperor", headers=admin.headers).status_code == 404


def test_info(client):
	body = client.get("/info").json()
	assert body["status"] == "ok"
	assert body["default_pass_threshold"] == 60.0
