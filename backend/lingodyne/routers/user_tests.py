from __future__ import annotations
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .auth import User, get_current_user
from ..db import get_db
from ..errors import Conflict, NotFound
from ..lifecycle import TestStatus
from ..models import TestTemplate, UserTest
from ..schemas import AnswerOut, QuestionOut, SaveAnswerIn, SubmitAnswersIn, UserTestOut, dump
from .. import workflow


router = APIRouter(prefix="/user-tests", tags=["user_tests"])

# Seconds on the clock when a test is assigned
FULL_TEST_SECONDS = 2 * 60 * 60
DEFAULT_TEST_SECONDS = 60 * 60

_RESULT_FIELDS = ("final_score", "max_possible_score", "is_passed", "certificate_url")


def learner_view(user_test: UserTest) -> Dict[str, Any]:
	"""Serialize a test for its owner. Scores stay hidden until the review is done."""
	data = dump(UserTestOut, user_test)
	if user_test.status != TestStatus.REVIEWED.value:
		for field in _RESULT_FIELDS:
			data[field] = None
	return data


class AssignRequest(BaseModel):
	test_template_id: str


@router.get("")
def list_my_tests(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	rows = (
		db.query(UserTest)
		.filter(UserTest.user_id == user.id)
		.order_by(UserTest.created_at.desc())
		.all()
	)
	return {"user_tests": [learner_view(r) for r in rows]}


@router.post("/assign", status_code=201)
def assign_test(req: AssignRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	template = (
		db.query(TestTemplate)
		.filter(TestTemplate.id == req.test_template_id, TestTemplate.is_active.is_(True))
		.first()
	)
	if template is None:
		raise NotFound("Test template not found or inactive")
	existing = (
		db.query(UserTest)
		.filter(UserTest.user_id == user.id, UserTest.test_template_id == template.id)
		.first()
	)
	if existing is not None:
		raise Conflict(f"Test already assigned to user (id={existing.id}, status={existing.status})")
	row = UserTest(
		user_id=user.id,
		test_template_id=template.id,
		status=TestStatus.NOT_STARTED.value,
		current_question_index=0,
		time_remaining_seconds=FULL_TEST_SECONDS if template.test_type == "full" else DEFAULT_TEST_SECONDS,
	)
	db.add(row)
	db.commit()
	db.refresh(row)
	return {"message": "Test successfully assigned to user", "user_test": learner_view(row)}


@router.get("/{user_test_id}")
def get_my_test(user_test_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	user_test = workflow.load_user_test(db, user_test_id, owner_id=user.id)
	data = learner_view(user_test)
	if user_test.status == TestStatus.REVIEWED.value:
		data["answers"] = [dump(AnswerOut, a) for a in user_test.answers]
	return {"user_test": data}


@router.get("/{user_test_id}/questions")
def get_questions(user_test_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	user_test = workflow.load_user_test(db, user_test_id, owner_id=user.id)
	template_questions = workflow.load_template_questions(db, user_test.test_template_id)
	questions: List[Dict[str, Any]] = []
	for tq in template_questions:
		item = dump(QuestionOut, tq.question)
		item["section"] = tq.section
		item["question_order"] = tq.question_order
		questions.append(item)
	saved = {a.question_id: a.answer_text for a in user_test.answers}
	return {"questions": questions, "saved_answers": saved}


@router.post("/{user_test_id}/start")
def start(user_test_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	user_test = workflow.start_test(db, user.id, user_test_id)
	return {"user_test": learner_view(user_test)}


@router.put("/{user_test_id}/answers/{question_id}")
def save_answer(
	user_test_id: str,
	question_id: str,
	req: SaveAnswerIn,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	row = workflow.save_answer(
		db,
		user.id,
		user_test_id,
		question_id,
		answer_text=req.answer_text,
		audio_url=req.audio_url,
		current_section=req.current_section,
		current_question_index=req.current_question_index,
		time_remaining_seconds=req.time_remaining_seconds,
	)
	return {"message": "Answer saved successfully", "answer_id": row.id}


@router.post("/{user_test_id}/submit")
def submit(user_test_id: str, req: SubmitAnswersIn, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	result = workflow.submit_answers(db, user.id, user_test_id, req.answers, audio_urls=req.audio_urls)
	return {
		"success": True,
		"message": "Test submitted successfully. Your test will be reviewed by our team and you'll be notified of the results.",
		"status": result.status,
		"submitted_at": result.submitted_at.isoformat(),
		"answers_saved": result.answers_saved,
	}


@router.post("/{user_test_id}/cancel")
def cancel(user_test_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	user_test = workflow.cancel_test(db, user.id, user_test_id)
	return {"user_test": learner_view(user_test)}
