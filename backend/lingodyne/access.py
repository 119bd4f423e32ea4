from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Set

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import Forbidden, NotFound
from .models import AuthUser, Role, UserRole

ROLE_NAMES = ("learner", "reviewer", "admin", "super_admin")


class Capability(str, Enum):
	REVIEW = "review"
	ADMIN = "admin"


CAPABILITY_ROLES: Dict[Capability, FrozenSet[str]] = {
	Capability.REVIEW: frozenset({"reviewer", "admin", "super_admin"}),
	Capability.ADMIN: frozenset({"admin", "super_admin"}),
}

_DENIED_MESSAGES = {
	Capability.REVIEW: "Access denied. Reviewer role required.",
	Capability.ADMIN: "Access denied. Admin role required.",
}


@dataclass(frozen=True)
class AccessDecision:
	allowed: bool
	capability: Capability
	roles: FrozenSet[str]

	@property
	def reason(self) -> str:
		return "ok" if self.allowed else _DENIED_MESSAGES[self.capability]

	def enforce(self) -> "AccessDecision":
		if not self.allowed:
			raise Forbidden(self.reason)
		return self


def get_user_roles(db: Session, user_id: str) -> Set[str]:
	stmt = (
		select(Role.name)
		.join(UserRole, UserRole.role_id == Role.id)
		.where(UserRole.user_id == user_id)
	)
	return set(db.execute(stmt).scalars().all())


def decide(roles: Iterable[str], capability: Capability) -> AccessDecision:
	held = frozenset(roles)
	return AccessDecision(
		allowed=bool(held & CAPABILITY_ROLES[capability]),
		capability=capability,
		roles=held,
	)


def check_capability(db: Session, user_id: str, capability: Capability) -> AccessDecision:
	return decide(get_user_roles(db, user_id), capability)


def ensure_roles_exist(db: Session) -> None:
	existing = set(db.execute(select(Role.name)).scalars().all())
	for name in ROLE_NAMES:
		if name not in existing:
			db.add(Role(name=name))
	db.flush()


def grant_role(db: Session, user_id: str, role_name: str) -> bool:
	"""Attach a role to a user. Returns False when the user already had it."""
	if role_name not in ROLE_NAMES:
		raise NotFound(f"Unknown role: {role_name}")
	if db.get(AuthUser, user_id) is None:
		raise NotFound("User not found")
	ensure_roles_exist(db)
	role = db.execute(select(Role).where(Role.name == role_name)).scalar_one()
	if db.get(UserRole, (user_id, role.id)) is not None:
		return False
	db.add(UserRole(user_id=user_id, role_id=role.id))
	db.flush()
	return True
