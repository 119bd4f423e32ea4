"""
Auto-grading and score aggregation.

Nothing in here touches the database: callers load questions, answers and
reviews, hand them over as plain values and persist the result themselves.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional

DEFAULT_PASS_THRESHOLD = 60.0


@dataclass(frozen=True)
class QuestionSpec:
	id: str
	max_score: float
	is_auto_gradable: bool
	correct_answer: Optional[str] = None


@dataclass(frozen=True)
class GradedAnswer:
	question_id: str
	is_correct: bool
	auto_score: float


@dataclass(frozen=True)
class AggregateResult:
	final_score: float
	max_possible_score: float
	percentage: float
	is_passed: bool
	pass_threshold: float

	def as_dict(self) -> Dict[str, object]:
		return {
			"final_score": self.final_score,
			"max_possible_score": self.max_possible_score,
			"percentage": round(self.percentage, 2),
			"is_passed": self.is_passed,
			"pass_threshold": self.pass_threshold,
		}


def normalize_answer(value: Optional[str]) -> str:
	if value is None:
		return ""
	return str(value).strip().casefold()


def grade_answer(question: QuestionSpec, answer: Optional[str]) -> GradedAnswer:
	"""Exact match after trimming and case folding. Blank answers never match."""
	given = normalize_answer(answer)
	expected = normalize_answer(question.correct_answer)
	is_correct = bool(given) and bool(expected) and given == expected
	return GradedAnswer(
		question_id=question.id,
		is_correct=is_correct,
		auto_score=float(question.max_score) if is_correct else 0.0,
	)


def auto_grade(questions: Iterable[QuestionSpec], answers: Mapping[str, Optional[str]]) -> Dict[str, GradedAnswer]:
	return {
		q.id: grade_answer(q, answers.get(q.id))
		for q in questions
		if q.is_auto_gradable
	}


def resolve_threshold(template_threshold: Optional[float], default: Optional[float] = None) -> float:
	if template_threshold is not None:
		return float(template_threshold)
	if default is not None:
		return float(default)
	return DEFAULT_PASS_THRESHOLD


def aggregate(
	questions: Iterable[QuestionSpec],
	auto_scores: Mapping[str, Optional[float]],
	review_scores: Mapping[str, Optional[float]],
	*,
	pass_threshold: float = DEFAULT_PASS_THRESHOLD,
) -> AggregateResult:
	final_score = 0.0
	max_possible = 0.0
	for q in questions:
		max_possible += float(q.max_score)
		source = auto_scores if q.is_auto_gradable else review_scores
		final_score += float(source.get(q.id) or 0.0)
	if max_possible > 0:
		# Multiply first so e.g. 12/20 lands on exactly 60.0
		percentage = final_score * 100 / max_possible
	else:
		percentage = 0.0
	# An empty template never passes, even with a 0% threshold
	is_passed = max_possible > 0 and percentage >= pass_threshold
	return AggregateResult(
		final_score=final_score,
		max_possible_score=max_possible,
		percentage=percentage,
		is_passed=is_passed,
		pass_threshold=float(pass_threshold),
	)
