from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

SECTIONS = ("reading", "writing", "speaking", "listening")
TEST_TYPES = ("demo", "practice", "full")


class TemplateSummary(BaseModel):
	id: str
	title: str
	description: Optional[str] = None
	language: str
	test_type: str
	duration_minutes: int

	model_config = ConfigDict(from_attributes=True)


class TemplateOut(TemplateSummary):
	price: float
	is_active: bool
	version_code: str
	pass_threshold: Optional[float] = None
	created_at: datetime
	updated_at: datetime


class TemplateIn(BaseModel):
	title: str = Field(..., min_length=1)
	description: Optional[str] = None
	language: str = Field(..., min_length=1)
	test_type: str
	duration_minutes: int = Field(..., gt=0)
	price: float = Field(default=0.0, ge=0)
	is_active: bool = True
	version_code: str = Field(default="v1", min_length=1, max_length=16)
	pass_threshold: Optional[float] = Field(default=None, ge=0, le=100)

	@model_validator(mode="after")
	def _check_type(self):
		if self.test_type not in TEST_TYPES:
			raise ValueError(f"test_type must be one of {list(TEST_TYPES)}")
		return self


class QuestionIn(BaseModel):
	section: str
	subsection: Optional[str] = None
	prompt: str = Field(..., min_length=1)
	options: Optional[List[str]] = None
	correct_answer: Optional[str] = None
	audio_url: Optional[str] = None
	image_url: Optional[str] = None
	language: Optional[str] = None
	difficulty: Optional[str] = None
	is_auto_gradable: bool = False
	max_score: float = Field(default=1.0, ge=0)
	time_limit_seconds: Optional[int] = Field(default=None, gt=0)
	instructions: Optional[str] = None

	@model_validator(mode="after")
	def _check_question(self):
		if self.section not in SECTIONS:
			raise ValueError(f"section must be one of {list(SECTIONS)}")
		if self.is_auto_gradable and not (self.correct_answer or "").strip():
			raise ValueError("auto-gradable questions need a correct_answer")
		return self


class QuestionOut(BaseModel):
	id: str
	section: str
	subsection: Optional[str] = None
	prompt: str
	options: Optional[List[str]] = None
	audio_url: Optional[str] = None
	image_url: Optional[str] = None
	language: Optional[str] = None
	difficulty: Optional[str] = None
	is_auto_gradable: bool
	max_score: float
	time_limit_seconds: Optional[int] = None
	instructions: Optional[str] = None

	model_config = ConfigDict(from_attributes=True)


class ReviewerQuestionOut(QuestionOut):
	# Reviewers see the key; learners never do
	correct_answer: Optional[str] = None
	question_order: int = 0


class AttachQuestionIn(BaseModel):
	question_id: str
	section: Optional[str] = None
	question_order: Optional[int] = None


class AnswerOut(BaseModel):
	id: int
	question_id: str
	section: str
	answer_text: Optional[str] = None
	audio_url: Optional[str] = None
	is_correct: Optional[bool] = None
	auto_score: Optional[float] = None

	model_config = ConfigDict(from_attributes=True)


class ReviewOut(BaseModel):
	question_id: str
	reviewer_id: str
	score: float
	max_score: Optional[float] = None
	feedback: Optional[str] = None
	reviewed_at: datetime

	model_config = ConfigDict(from_attributes=True)


class LearnerOut(BaseModel):
	id: str
	email: str
	first_name: str
	last_name: str

	model_config = ConfigDict(from_attributes=True)


class UserTestOut(BaseModel):
	id: str
	test_template_id: str
	status: str
	started_at: Optional[datetime] = None
	submitted_at: Optional[datetime] = None
	reviewed_at: Optional[datetime] = None
	final_score: Optional[float] = None
	max_possible_score: Optional[float] = None
	is_passed: Optional[bool] = None
	certificate_url: Optional[str] = None
	current_section: Optional[str] = None
	current_question_index: int = 0
	time_remaining_seconds: Optional[int] = None
	created_at: datetime
	test_template: Optional[TemplateSummary] = Field(default=None, validation_alias="template")

	model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class ReviewQueueItem(BaseModel):
	id: str
	user_id: str
	test_template_id: str
	status: str
	started_at: Optional[datetime] = None
	submitted_at: Optional[datetime] = None
	created_at: datetime
	user: Optional[LearnerOut] = None
	test_template: Optional[TemplateSummary] = Field(default=None, validation_alias="template")

	model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class SubmitAnswersIn(BaseModel):
	answers: Dict[str, Optional[str]] = Field(default_factory=dict)
	audio_urls: Dict[str, str] = Field(default_factory=dict)


class SaveAnswerIn(BaseModel):
	answer_text: Optional[str] = None
	audio_url: Optional[str] = None
	current_section: Optional[str] = None
	current_question_index: Optional[int] = Field(default=None, ge=0)
	time_remaining_seconds: Optional[int] = Field(default=None, ge=0)


class ReviewEntryIn(BaseModel):
	question_id: Optional[str] = Field(default=None, validation_alias="questionId")
	score: float = Field(..., allow_inf_nan=False)
	max_score: Optional[float] = Field(default=None, validation_alias="maxScore", ge=0, allow_inf_nan=False)
	feedback: Optional[str] = None

	model_config = ConfigDict(populate_by_name=True)


class SubmitReviewIn(BaseModel):
	reviews: Dict[str, ReviewEntryIn] = Field(default_factory=dict)


class ReviewResultOut(BaseModel):
	success: bool = True
	message: str = "Review submitted successfully"
	final_score: float
	max_possible_score: float
	percentage: float
	is_passed: bool
	pass_threshold: float


def dump(model_cls: type[BaseModel], obj: Any) -> Dict[str, Any]:
	return model_cls.model_validate(obj).model_dump(mode="json")
