from __future__ import annotations
import logging

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from .auth import User, require_admin
from ..access import grant_role
from ..db import get_db
from ..errors import Conflict, NotFound
from ..lifecycle import TestStatus
from ..models import AuthUser, Question, TemplateQuestion, TestTemplate, UserTest
from ..schemas import AttachQuestionIn, QuestionIn, ReviewQueueItem, ReviewerQuestionOut, TemplateIn, TemplateOut, dump


router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger(__name__)


def _count(db: Session, model, *criteria) -> int:
	return db.query(func.count()).select_from(model).filter(*criteria).scalar() or 0


@router.get("/stats")
def stats(user: User = Depends(require_admin), db: Session = Depends(get_db)):
	return {
		"total_tests": _count(db, UserTest),
		"pending_reviews": _count(db, UserTest, UserTest.status == TestStatus.UNDER_REVIEW.value),
		"total_users": _count(db, AuthUser),
		"total_questions": _count(db, Question),
	}


@router.get("/reviews")
def pending_reviews(user: User = Depends(require_admin), db: Session = Depends(get_db)):
	rows = (
		db.query(UserTest)
		.filter(UserTest.status == TestStatus.UNDER_REVIEW.value)
		.order_by(UserTest.submitted_at.desc())
		.all()
	)
	return {"tests": [dump(ReviewQueueItem, r) for r in rows]}


# ---- Test templates ----

def _get_template(db: Session, template_id: str) -> TestTemplate:
	row = db.get(TestTemplate, template_id)
	if row is None:
		raise NotFound("Template not found")
	return row


@router.get("/test-templates")
def list_templates(user: User = Depends(require_admin), db: Session = Depends(get_db)):
	rows = db.query(TestTemplate).order_by(TestTemplate.created_at.desc()).all()
	return {"templates": [dump(TemplateOut, r) for r in rows]}


@router.post("/test-templates", status_code=201)
def create_template(req: TemplateIn, user: User = Depends(require_admin), db: Session = Depends(get_db)):
	row = TestTemplate(**req.model_dump())
	db.add(row)
	db.commit()
	db.refresh(row)
	logger.info("Template %s (%s) created by %s", row.id, row.title, user.email)
	return {"template": dump(TemplateOut, row)}


@router.get("/test-templates/{template_id}")
def get_template(template_id: str, user: User = Depends(require_admin), db: Session = Depends(get_db)):
	row = _get_template(db, template_id)
	return {"template": dump(TemplateOut, row), "question_count": len(row.questions)}


@router.put("/test-templates/{template_id}")
def update_template(template_id: str, req: TemplateIn, user: User = Depends(require_admin), db: Session = Depends(get_db)):
	row = _get_template(db, template_id)
	for key, value in req.model_dump().items():
		setattr(row, key, value)
	db.commit()
	db.refresh(row)
	return {"template": dump(TemplateOut, row)}


@router.delete("/test-templates/{template_id}")
def delete_template(template_id: str, user: User = Depends(require_admin), db: Session = Depends(get_db)):
	row = _get_template(db, template_id)
	if _count(db, UserTest, UserTest.test_template_id == template_id):
		raise Conflict("Template has tests assigned; deactivate it instead")
	db.delete(row)
	db.commit()
	return {"success": True}


# ---- Questions ----

@router.post("/questions", status_code=201)
def create_question(req: QuestionIn, user: User = Depends(require_admin), db: Session = Depends(get_db)):
	row = Question(**req.model_dump())
	db.add(row)
	db.commit()
	db.refresh(row)
	return {"question": dump(ReviewerQuestionOut, row)}


@router.post("/test-templates/{template_id}/questions", status_code=201)
def attach_question(template_id: str, req: AttachQuestionIn, user: User = Depends(require_admin), db: Session = Depends(get_db)):
	template = _get_template(db, template_id)
	question = db.get(Question, req.question_id)
	if question is None:
		raise NotFound("Question not found")
	if any(tq.question_id == question.id for tq in template.questions):
		raise Conflict("Question already belongs to this template")
	order = req.question_order
	if order is None:
		order = max((tq.question_order for tq in template.questions), default=0) + 1
	link = TemplateQuestion(question_id=question.id, section=req.section or question.section, question_order=order)
	template.questions.append(link)
	db.commit()
	return {"template_id": template.id, "question_id": question.id, "section": link.section, "question_order": link.question_order}


# ---- Roles ----

@router.post("/users/{user_id}/roles/{role_name}", status_code=201)
def add_role(user_id: str, role_name: str, user: User = Depends(require_admin), db: Session = Depends(get_db)):
	created = grant_role(db, user_id, role_name)
	db.commit()
	if created:
		logger.info("Role %s granted to %s by %s", role_name, user_id, user.email)
	return {"user_id": user_id, "role": role_name, "created": created}
