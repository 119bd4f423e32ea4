from __future__ import annotations
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .auth import User, get_current_user, require_reviewer
from ..db import get_db
from ..errors import ValidationFailed
from ..lifecycle import REVIEWABLE_STATES
from ..models import UserTest
from ..schemas import AnswerOut, ReviewOut, ReviewQueueItem, ReviewResultOut, ReviewerQuestionOut, SubmitReviewIn, TemplateOut, dump
from .. import workflow


router = APIRouter(prefix="/reviewer", tags=["reviewer"])
logger = logging.getLogger(__name__)


@router.get("/tests")
def review_queue(user: User = Depends(require_reviewer), db: Session = Depends(get_db)):
	rows = (
		db.query(UserTest)
		.filter(UserTest.status.in_([s.value for s in REVIEWABLE_STATES]))
		.order_by(UserTest.submitted_at.desc())
		.all()
	)
	breakdown: Dict[str, int] = {}
	for r in rows:
		breakdown[r.status] = breakdown.get(r.status, 0) + 1
	logger.debug("Review queue for %s: %d tests %s", user.email, len(rows), breakdown)
	return {"tests": [dump(ReviewQueueItem, r) for r in rows], "status_breakdown": breakdown}


@router.get("/tests/{user_test_id}")
def review_detail(user_test_id: str, user: User = Depends(require_reviewer), db: Session = Depends(get_db)):
	user_test = workflow.load_user_test(db, user_test_id)
	return {"test": dump(ReviewQueueItem, user_test)}


@router.get("/tests/{user_test_id}/questions")
def review_bundle(user_test_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	bundle = workflow.get_review_bundle(db, user.id, user_test_id)
	questions = []
	for tq in bundle["questions"]:
		item: Dict[str, Any] = dump(ReviewerQuestionOut, tq.question)
		item["section"] = tq.section
		item["question_order"] = tq.question_order
		questions.append(item)
	return {
		"template": dump(TemplateOut, bundle["template"]),
		"questions": questions,
		"answers": [dump(AnswerOut, a) for a in bundle["answers"]],
		"reviews": [dump(ReviewOut, r) for r in bundle["reviews"]],
	}


@router.post("/tests/{user_test_id}/review", response_model=ReviewResultOut)
def submit_review(user_test_id: str, req: SubmitReviewIn, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	reviews: Dict[str, workflow.ReviewInput] = {}
	for key, entry in req.reviews.items():
		question_id = entry.question_id or key
		if question_id in reviews:
			raise ValidationFailed(f"Duplicate review for question {question_id}")
		reviews[question_id] = workflow.ReviewInput(score=entry.score, max_score=entry.max_score, feedback=entry.feedback)
	result = workflow.submit_review(db, user.id, user_test_id, reviews)
	return ReviewResultOut(**result.as_dict())
