from __future__ import annotations

import pytest

from conftest import create_user
from lingodyne.access import Capability, check_capability, decide, get_user_roles, grant_role
from lingodyne.errors import Forbidden, NotFound


@pytest.mark.parametrize(
	"roles, review, admin",
	[
		(set(), False, False),
		({"learner"}, False, False),
		({"reviewer"}, True, False),
		({"admin"}, True, True),
		({"super_admin", "learner"}, True, True),
	],
)
def test_capabilities_by_role(roles, review, admin):
	assert decide(roles, Capability.REVIEW).allowed is review
	assert decide(roles, Capability.ADMIN).allowed is admin


def test_denied_decision_raises_forbidden():
	decision = decide({"learner"}, Capability.REVIEW)
	assert decision.reason == "Access denied. Reviewer role required."
	with pytest.raises(Forbidden):
		decision.enforce()
	assert decide({"admin"}, Capability.ADMIN).enforce().allowed


def test_grant_role_is_idempotent(db):
	user_id = create_user(db, "someone@example.com")
	assert get_user_roles(db, user_id) == set()
	assert grant_role(db, user_id, "reviewer") is True
	assert grant_role(db, user_id, "reviewer") is False
	db.commit()
	assert get_user_roles(db, user_id) == {"reviewer"}
	assert check_capability(db, user_id, Capability.REVIEW).allowed
	assert not check_capability(db, user_id, Capability.ADMIN).allowed


def test_grant_unknown_role_or_user(db):
	user_id = create_user(db, "other@example.com")
	with pytest.raises(NotFound):
		grant_role(db, user_id, "overlord")
	with pytest.raises(NotFound):
		grant_role(db, "missing-user", "reviewer")
