"""
Test lifecycle workflow
=======================

The three request-scoped stages a test instance goes through once the
learner is done:

- ``submit_answers``: store the learner's answers, auto-grade the objective
  ones and hand the test over for review.
- ``submit_review``: store reviewer scores for the subjective questions,
  aggregate everything and close the test.
- ``get_review_bundle``: what a reviewer needs on screen to grade a test.

Each stage commits once. On any database error the session is rolled back
so the test stays exactly as it was before the call. The review stage also
relies on the ``user_tests.version`` column: if another reviewer closed the
test in the meantime, the stale write is rejected instead of overwriting.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from .access import Capability, check_capability
from .errors import ConcurrentUpdate, NotFound, PersistenceFailure, ValidationFailed
from .lifecycle import TestStatus, ensure_can_cancel, ensure_can_review, ensure_can_start, ensure_can_submit
from .models import AdminReview, TemplateQuestion, TestAnswer, UserTest
from .schemas import SECTIONS
from .scoring import AggregateResult, QuestionSpec, aggregate, auto_grade, resolve_threshold
from .settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReviewInput:
	score: float
	max_score: Optional[float] = None
	feedback: Optional[str] = None


@dataclass(frozen=True)
class SubmissionResult:
	user_test_id: str
	status: str
	submitted_at: datetime
	answers_saved: int
	auto_graded: int


# ============================================================================
# LOADING
# ============================================================================

def load_user_test(db: Session, user_test_id: str, *, owner_id: Optional[str] = None) -> UserTest:
	query = db.query(UserTest).filter(UserTest.id == user_test_id)
	if owner_id is not None:
		query = query.filter(UserTest.user_id == owner_id)
	user_test = query.first()
	if user_test is None:
		raise NotFound("Test not found")
	return user_test


def load_template_questions(db: Session, template_id: str) -> List[TemplateQuestion]:
	return (
		db.query(TemplateQuestion)
		.filter(TemplateQuestion.test_template_id == template_id)
		.order_by(TemplateQuestion.question_order, TemplateQuestion.id)
		.all()
	)


def to_question_specs(template_questions: List[TemplateQuestion]) -> List[QuestionSpec]:
	return [
		QuestionSpec(
			id=tq.question.id,
			max_score=float(tq.question.max_score or 0),
			is_auto_gradable=bool(tq.question.is_auto_gradable),
			correct_answer=tq.question.correct_answer,
		)
		for tq in template_questions
	]


def _section_rank(section: str) -> int:
	try:
		return SECTIONS.index(section)
	except ValueError:
		return len(SECTIONS)


def sort_for_review(template_questions: List[TemplateQuestion]) -> List[TemplateQuestion]:
	"""reading -> writing -> speaking -> listening, then template order."""
	return sorted(template_questions, key=lambda tq: (_section_rank(tq.section), tq.question_order))


def _is_unique_violation(err: IntegrityError) -> bool:
	# 23505 is unique_violation on PostgreSQL; SQLite and MySQL only say it in the message
	if getattr(err.orig, "sqlstate", None) == "23505" or getattr(err.orig, "pgcode", None) == "23505":
		return True
	message = str(err.orig).lower()
	return "unique constraint" in message or "duplicate entry" in message or "duplicate key" in message


def _commit(db: Session, action: str, user_test_id: str) -> None:
	try:
		db.commit()
	except StaleDataError as err:
		db.rollback()
		logger.warning("Concurrent %s on test %s rejected: %s", action, user_test_id, err)
		raise ConcurrentUpdate() from err
	except IntegrityError as err:
		db.rollback()
		if _is_unique_violation(err):
			logger.warning("Concurrent %s on test %s rejected: %s", action, user_test_id, err.orig)
			raise ConcurrentUpdate() from err
		logger.error("Integrity error saving %s for test %s: %s", action, user_test_id, err.orig)
		raise PersistenceFailure(f"Failed to save {action}") from err
	except SQLAlchemyError as err:
		db.rollback()
		logger.error("Failed to persist %s for test %s", action, user_test_id, exc_info=True)
		raise PersistenceFailure(f"Failed to save {action}") from err


# ============================================================================
# LEARNER SIDE
# ============================================================================

def start_test(db: Session, user_id: str, user_test_id: str) -> UserTest:
	user_test = load_user_test(db, user_test_id, owner_id=user_id)
	if user_test.status == TestStatus.IN_PROGRESS.value:
		# Resuming is fine
		return user_test
	user_test.status = ensure_can_start(user_test.status).value
	user_test.started_at = datetime.utcnow()
	_commit(db, "start", user_test.id)
	return user_test


def save_answer(
	db: Session,
	user_id: str,
	user_test_id: str,
	question_id: str,
	*,
	answer_text: Optional[str] = None,
	audio_url: Optional[str] = None,
	current_section: Optional[str] = None,
	current_question_index: Optional[int] = None,
	time_remaining_seconds: Optional[int] = None,
) -> TestAnswer:
	"""Store one in-progress answer (upsert). Grading happens at submission."""
	user_test = load_user_test(db, user_test_id, owner_id=user_id)
	if user_test.status != TestStatus.IN_PROGRESS.value:
		ensure_can_start(user_test.status)
		user_test.status = TestStatus.IN_PROGRESS.value
		user_test.started_at = user_test.started_at or datetime.utcnow()
	sections = {tq.question_id: tq.section for tq in load_template_questions(db, user_test.test_template_id)}
	if question_id not in sections:
		raise ValidationFailed(f"Question {question_id} is not part of this test")
	row = next((a for a in user_test.answers if a.question_id == question_id), None)
	if row is None:
		row = TestAnswer(question_id=question_id, section=sections[question_id])
		user_test.answers.append(row)
	row.answer_text = answer_text
	if audio_url is not None:
		row.audio_url = audio_url
	if current_section is not None:
		user_test.current_section = current_section
	if current_question_index is not None:
		user_test.current_question_index = current_question_index
	if time_remaining_seconds is not None:
		user_test.time_remaining_seconds = time_remaining_seconds
	_commit(db, "answer", user_test.id)
	return row


def submit_answers(
	db: Session,
	user_id: str,
	user_test_id: str,
	answers: Mapping[str, Optional[str]],
	*,
	audio_urls: Optional[Mapping[str, str]] = None,
) -> SubmissionResult:
	user_test = load_user_test(db, user_test_id, owner_id=user_id)
	target = ensure_can_submit(user_test.status)

	template_questions = load_template_questions(db, user_test.test_template_id)
	sections = {tq.question_id: tq.section for tq in template_questions}
	audio_urls = audio_urls or {}
	unknown = sorted(qid for qid in list(answers) + list(audio_urls) if qid not in sections)
	if unknown:
		raise ValidationFailed(f"Questions not part of this test: {', '.join(unknown)}")

	existing = {a.question_id: a for a in user_test.answers}
	merged: Dict[str, Optional[str]] = {}
	for qid in sections:
		if qid in answers:
			merged[qid] = answers[qid]
		elif qid in existing:
			merged[qid] = existing[qid].answer_text
		else:
			merged[qid] = None

	graded = auto_grade(to_question_specs(template_questions), merged)

	# Exactly one row per template question, blanks included
	for qid, section in sections.items():
		row = existing.get(qid)
		if row is None:
			row = TestAnswer(question_id=qid, section=section)
			user_test.answers.append(row)
		row.section = section
		row.answer_text = merged[qid]
		if qid in audio_urls:
			row.audio_url = audio_urls[qid]
		result = graded.get(qid)
		row.is_correct = result.is_correct if result else None
		row.auto_score = result.auto_score if result else None

	now = datetime.utcnow()
	user_test.status = target.value
	user_test.submitted_at = now
	user_test.started_at = user_test.started_at or now
	user_test.current_section = None
	_commit(db, "submission", user_test.id)
	logger.info(
		"Test %s submitted for review: %d answers, %d auto-graded",
		user_test.id, len(sections), len(graded),
	)
	return SubmissionResult(
		user_test_id=user_test.id,
		status=user_test.status,
		submitted_at=now,
		answers_saved=len(sections),
		auto_graded=len(graded),
	)


def cancel_test(db: Session, user_id: str, user_test_id: str) -> UserTest:
	user_test = load_user_test(db, user_test_id, owner_id=user_id)
	user_test.status = ensure_can_cancel(user_test.status).value
	_commit(db, "cancellation", user_test.id)
	return user_test


# ============================================================================
# REVIEWER SIDE
# ============================================================================

def _validate_reviews(template_questions: List[TemplateQuestion], reviews: Mapping[str, ReviewInput]) -> None:
	by_id = {tq.question_id: tq.question for tq in template_questions}
	for qid, review in reviews.items():
		question = by_id.get(qid)
		if question is None:
			raise ValidationFailed(f"Question {qid} is not part of this test")
		if question.is_auto_gradable:
			raise ValidationFailed(f"Question {qid} is auto-graded and cannot be reviewed")
		if not math.isfinite(review.score) or review.score < 0 or review.score > float(question.max_score):
			raise ValidationFailed(f"Score for question {qid} must be between 0 and {question.max_score:g}")


def submit_review(
	db: Session,
	reviewer_id: str,
	user_test_id: str,
	reviews: Mapping[str, ReviewInput],
) -> AggregateResult:
	check_capability(db, reviewer_id, Capability.REVIEW).enforce()
	user_test = load_user_test(db, user_test_id)
	target = ensure_can_review(user_test.status)

	template_questions = load_template_questions(db, user_test.test_template_id)
	_validate_reviews(template_questions, reviews)

	max_by_id = {tq.question_id: float(tq.question.max_score) for tq in template_questions}
	now = datetime.utcnow()
	existing = {r.question_id: r for r in user_test.reviews}
	for qid, review in reviews.items():
		row = existing.get(qid)
		if row is None:
			row = AdminReview(question_id=qid, reviewer_id=reviewer_id)
			user_test.reviews.append(row)
			existing[qid] = row
		row.reviewer_id = reviewer_id
		row.score = float(review.score)
		row.max_score = review.max_score if review.max_score is not None else max_by_id[qid]
		row.feedback = review.feedback
		row.reviewed_at = now

	result = aggregate(
		to_question_specs(template_questions),
		{a.question_id: a.auto_score for a in user_test.answers},
		{qid: r.score for qid, r in existing.items()},
		pass_threshold=resolve_threshold(user_test.template.pass_threshold, settings.default_pass_threshold),
	)

	user_test.status = target.value
	user_test.reviewed_at = now
	user_test.final_score = result.final_score
	user_test.max_possible_score = result.max_possible_score
	user_test.is_passed = result.is_passed
	_commit(db, "review", user_test.id)
	logger.info(
		"Test %s reviewed by %s: %g/%g (%.1f%%) passed=%s",
		user_test.id, reviewer_id, result.final_score, result.max_possible_score, result.percentage, result.is_passed,
	)
	return result


def get_review_bundle(db: Session, reviewer_id: str, user_test_id: str) -> Dict[str, Any]:
	"""Template, ordered questions (with keys) and the learner's answers."""
	check_capability(db, reviewer_id, Capability.REVIEW).enforce()
	user_test = load_user_test(db, user_test_id)
	template_questions = sort_for_review(load_template_questions(db, user_test.test_template_id))
	return {
		"user_test": user_test,
		"template": user_test.template,
		"questions": template_questions,
		"answers": list(user_test.answers),
		"reviews": list(user_test.reviews),
	}
