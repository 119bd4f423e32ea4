from __future__ import annotations
from enum import Enum
from typing import Dict, FrozenSet

from .errors import AlreadySubmitted, InvalidTransition


class TestStatus(str, Enum):
	NOT_STARTED = "not_started"
	IN_PROGRESS = "in_progress"
	SUBMITTED = "submitted"
	UNDER_REVIEW = "under_review"
	REVIEWED = "reviewed"
	CANCELLED = "cancelled"


# Forward-only; REVIEWED and CANCELLED are terminal.
# SUBMITTED -> UNDER_REVIEW happens inside the same submit request today.
TRANSITIONS: Dict[TestStatus, FrozenSet[TestStatus]] = {
	TestStatus.NOT_STARTED: frozenset({TestStatus.IN_PROGRESS, TestStatus.SUBMITTED, TestStatus.UNDER_REVIEW, TestStatus.CANCELLED}),
	TestStatus.IN_PROGRESS: frozenset({TestStatus.SUBMITTED, TestStatus.UNDER_REVIEW, TestStatus.CANCELLED}),
	TestStatus.SUBMITTED: frozenset({TestStatus.UNDER_REVIEW, TestStatus.REVIEWED, TestStatus.CANCELLED}),
	TestStatus.UNDER_REVIEW: frozenset({TestStatus.REVIEWED, TestStatus.CANCELLED}),
	TestStatus.REVIEWED: frozenset(),
	TestStatus.CANCELLED: frozenset(),
}

SUBMITTED_STATES = frozenset({TestStatus.SUBMITTED, TestStatus.UNDER_REVIEW, TestStatus.REVIEWED})
REVIEWABLE_STATES = frozenset({TestStatus.SUBMITTED, TestStatus.UNDER_REVIEW})


def _coerce(status: str | TestStatus) -> TestStatus:
	try:
		return TestStatus(status)
	except ValueError:
		raise InvalidTransition(f"Unknown test status: {status}")


def can_transition(current: str | TestStatus, target: str | TestStatus) -> bool:
	return _coerce(target) in TRANSITIONS[_coerce(current)]


def ensure_transition(current: str | TestStatus, target: str | TestStatus) -> TestStatus:
	cur, tgt = _coerce(current), _coerce(target)
	if not can_transition(cur, tgt):
		raise InvalidTransition(f"Cannot move test from {cur.value} to {tgt.value}")
	return tgt


def ensure_can_start(current: str | TestStatus) -> TestStatus:
	return ensure_transition(current, TestStatus.IN_PROGRESS)


def ensure_can_submit(current: str | TestStatus) -> TestStatus:
	cur = _coerce(current)
	if cur in SUBMITTED_STATES:
		raise AlreadySubmitted(status=cur.value)
	return ensure_transition(cur, TestStatus.UNDER_REVIEW)


def ensure_can_review(current: str | TestStatus) -> TestStatus:
	cur = _coerce(current)
	if cur == TestStatus.REVIEWED:
		raise InvalidTransition("Test has already been reviewed")
	if cur not in REVIEWABLE_STATES:
		raise InvalidTransition(f"Test is {cur.value} and cannot be reviewed yet")
	return TestStatus.REVIEWED


def ensure_can_cancel(current: str | TestStatus) -> TestStatus:
	return ensure_transition(current, TestStatus.CANCELLED)
