from __future__ import annotations
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import NotFound, ValidationFailed
from ..models import Question, TestTemplate
from ..schemas import TEST_TYPES, QuestionOut, TemplateSummary, dump
from ..workflow import load_template_questions


router = APIRouter(prefix="/test-templates", tags=["test_templates"])
demo_router = APIRouter(prefix="/demo-test", tags=["demo"])
logger = logging.getLogger(__name__)


def group_by_language(templates) -> Dict[str, Dict[str, Any]]:
	grouped: Dict[str, Dict[str, Any]] = {}
	for t in templates:
		bucket = grouped.setdefault(t["language"], {"language": t["language"], **{kind: [] for kind in TEST_TYPES}})
		bucket.setdefault(t["test_type"], []).append(t)
	return grouped


@router.get("")
def list_templates(db: Session = Depends(get_db)):
	rows = (
		db.query(TestTemplate)
		.filter(TestTemplate.is_active.is_(True))
		.order_by(TestTemplate.language.asc(), TestTemplate.version_code.asc())
		.all()
	)
	templates = [dump(TemplateSummary, r) for r in rows]
	return {"test_templates": templates, "grouped_tests": group_by_language(templates)}


@router.get("/{template_id}")
def get_template(template_id: str, db: Session = Depends(get_db)):
	row = (
		db.query(TestTemplate)
		.filter(TestTemplate.id == template_id, TestTemplate.is_active.is_(True))
		.first()
	)
	if row is None:
		raise NotFound("Test template not found")
	data = dump(TemplateSummary, row)
	data["question_count"] = len(row.questions)
	return {"test_template": data}


# ---- Demo test ----

DEMO_LANGUAGE = "English"
DEMO_TYPE = "demo"
DEMO_VERSION = "DEMO"

# subsection -> how the client renders the question
_QUESTION_TYPES = {
	"mcq": "mcq",
	"correct_word": "mcq",
	"fill_blanks": "fill_blank",
	"essay": "essay",
	"topic_discussion": "speaking",
	"description": "speaking",
	"opinion": "speaking",
}


def question_type_for(question: Question) -> str:
	subsection = (question.subsection or "").lower()
	if subsection in _QUESTION_TYPES:
		return _QUESTION_TYPES[subsection]
	if subsection and question.section == "listening" and question.options:
		return "listening_mcq"
	return "mcq"


@demo_router.get("/questions")
def demo_questions(
	lang: str = DEMO_LANGUAGE,
	test_type: str = Query(DEMO_TYPE, alias="type"),
	version: str = DEMO_VERSION,
	db: Session = Depends(get_db),
):
	"""Questions of the public demo test. No login needed, no answer keys."""
	if test_type != DEMO_TYPE or lang.casefold() != DEMO_LANGUAGE.casefold() or version != DEMO_VERSION:
		raise ValidationFailed("Invalid parameters for demo test questions. Only the English DEMO test is supported.")
	template = (
		db.query(TestTemplate)
		.filter(
			func.lower(TestTemplate.language) == lang.casefold(),
			TestTemplate.version_code == version,
			TestTemplate.test_type == test_type,
			TestTemplate.is_active.is_(True),
		)
		.order_by(TestTemplate.created_at.desc())
		.first()
	)
	if template is None:
		logger.warning("Demo template not found for %s %s", lang, version)
		raise NotFound("Demo test configuration not found.")
	template_questions = load_template_questions(db, template.id)
	if not template_questions:
		raise NotFound("No questions configured for this demo test.")
	questions: List[Dict[str, Any]] = []
	for tq in template_questions:
		item = dump(QuestionOut, tq.question)
		item["section"] = tq.section
		item["question_order"] = tq.question_order
		item["question_type"] = question_type_for(tq.question)
		questions.append(item)
	return {"questions": questions, "duration_minutes": template.duration_minutes}
