"""
Report assembly.

Builds report content from the persisted state of a completed assessment:
the assessment row, its child and practice, its responses and the question
catalog. The content is a pure function of that state. It carries no
generation timestamps, so assembling twice from the same rows yields equal
dicts. ``generated_at`` lives on the report row instead.
"""
import math
import uuid
from collections import Counter
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pha.core.exceptions import ReportBuildError, StorageError
from pha.models.assessment import Assessment, SurveyResponse
from pha.models.reference import SurveyQuestionDefinition
from pha.models.report import REPORT_TYPES, Report
from pha.repositories.assessment import AssessmentRepository
from pha.repositories.report import ReportRepository
from pha.repositories.survey_response import SurveyResponseRepository
from pha.services.chart_service import ChartService
from pha.services.scoring import score_from_category_scores

logger = structlog.get_logger()

UNCATEGORIZED = "uncategorized"
STRENGTH_THRESHOLD = 75
CONCERN_THRESHOLD = 40
DEFAULT_SCALE_MAX = 10

TRUE_STRINGS = {"true", "yes", "1", "on"}
FALSE_STRINGS = {"false", "no", "0", "off"}


# ----------------------------------------------------------------------------
# Value processing
# ----------------------------------------------------------------------------

def _result(processed: Any, display: str, errors: Optional[List[str]] = None) -> Dict[str, Any]:
    errors = errors or []
    return {
        "processed_value": processed,
        "display_value": display,
        "is_valid": not errors,
        "validation_errors": errors,
    }


def _to_number(raw: Any) -> Optional[float]:
    if isinstance(raw, bool):
        return None
    try:
        number = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def _normalize_choices(choices: Any) -> List[Dict[str, Any]]:
    if not isinstance(choices, list):
        return []
    normalized = []
    for choice in choices:
        if isinstance(choice, dict):
            normalized.append(choice)
        elif isinstance(choice, (str, int, float)):
            normalized.append({"value": choice, "label": choice})
    return normalized


def _process_multiple_choice(raw: Any, options: Any) -> Dict[str, Any]:
    choices = _normalize_choices(options.get("choices")) if isinstance(options, dict) else []
    if not choices:
        return _result(raw, str(raw), ["No valid options defined for multiple choice question"])

    # A list answer is a multi-select: every element must be a known choice
    selected = raw if isinstance(raw, list) else [raw]
    values, labels, errors = [], [], []
    for item in selected:
        text = str(item)
        match = next(
            (c for c in choices if str(c.get("value")) == text or str(c.get("label")) == text),
            None,
        )
        if match is None:
            values.append(text)
            labels.append(text)
            errors.append(f"Invalid choice: {text}")
        else:
            values.append(match.get("value"))
            labels.append(str(match.get("label") or match.get("value")))

    processed = values if isinstance(raw, list) else values[0]
    return _result(processed, ", ".join(labels), errors)


def _process_text(raw: Any, rules: Dict[str, Any]) -> Dict[str, Any]:
    text = ", ".join(str(v) for v in raw) if isinstance(raw, list) else str(raw).strip()
    errors = []
    if rules.get("min_length") and len(text) < rules["min_length"]:
        errors.append(f"Text too short (minimum {rules['min_length']} characters)")
    if rules.get("max_length") and len(text) > rules["max_length"]:
        errors.append(f"Text too long (maximum {rules['max_length']} characters)")
    return _result(text, text, errors)


def _process_number(raw: Any, rules: Dict[str, Any]) -> Dict[str, Any]:
    number = _to_number(raw)
    if number is None:
        return _result(None, str(raw), ["Invalid number format"])
    errors = []
    if rules.get("min") is not None and number < rules["min"]:
        errors.append(f"Number too small (minimum {rules['min']})")
    if rules.get("max") is not None and number > rules["max"]:
        errors.append(f"Number too large (maximum {rules['max']})")
    return _result(number, str(number), errors)


def _process_boolean(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, bool):
        value = raw
    elif isinstance(raw, str) and raw.strip().lower() in TRUE_STRINGS:
        value = True
    elif isinstance(raw, str) and raw.strip().lower() in FALSE_STRINGS:
        value = False
    elif isinstance(raw, (int, float)):
        value = raw != 0
    else:
        return _result(None, str(raw), ["Invalid boolean value"])
    return _result(value, "Yes" if value else "No")


def _process_scale(raw: Any, rules: Dict[str, Any]) -> Dict[str, Any]:
    number = _to_number(raw)
    if number is None:
        return _result(None, str(raw), ["Invalid scale value"])
    low = rules.get("min_scale") or 1
    high = rules.get("max_scale") or DEFAULT_SCALE_MAX
    errors = []
    if number < low or number > high:
        errors.append(f"Scale value must be between {low} and {high}")
    return _result(number, f"{number}/{high}", errors)


def _process_date(raw: Any) -> Dict[str, Any]:
    try:
        parsed = date.fromisoformat(str(raw)[:10])
    except ValueError:
        return _result(None, str(raw), ["Invalid date format"])
    return _result(parsed.isoformat(), parsed.strftime("%d %b %Y"))


def process_value(
    raw: Any,
    question_type: str,
    options: Any = None,
    validation_rules: Any = None,
) -> Dict[str, Any]:
    """Interpret a stored response value according to its question type."""
    if raw is None or raw == "" or raw == []:
        return _result(None, "No response", ["No response provided"])

    rules = validation_rules if isinstance(validation_rules, dict) else {}
    try:
        if question_type == "multiple_choice":
            return _process_multiple_choice(raw, options)
        if question_type == "text":
            return _process_text(raw, rules)
        if question_type == "number":
            return _process_number(raw, rules)
        if question_type == "boolean":
            return _process_boolean(raw)
        if question_type == "scale":
            return _process_scale(raw, rules)
        if question_type == "date":
            return _process_date(raw)
    except (TypeError, ValueError, AttributeError) as e:
        # Malformed catalog rules invalidate this answer only
        return _result(None, str(raw), [f"Processing error: {e}"])
    return _result(raw, str(raw), [f"Unsupported question type: {question_type}"])


def map_response(
    response: SurveyResponse, question: Optional[SurveyQuestionDefinition]
) -> Dict[str, Any]:
    """One response joined to its catalog entry, with interpreted value."""
    if question is None:
        display = response.response_text or str(response.response_value)
        return {
            "question_id": response.question_id,
            "question_text": "Unknown question",
            "question_type": None,
            "category": UNCATEGORIZED,
            "raw_value": response.response_value,
            "response_text": response.response_text,
            "processed_value": None,
            "display_value": display,
            "is_valid": False,
            "validation_errors": ["Question definition not found"],
            "order_index": None,
        }

    processed = process_value(
        response.response_value,
        question.question_type,
        question.options,
        question.validation_rules,
    )
    return {
        "question_id": response.question_id,
        "question_text": question.question_text,
        "question_type": question.question_type,
        "category": question.category or UNCATEGORIZED,
        "raw_value": response.response_value,
        "response_text": response.response_text,
        **processed,
        "order_index": question.order_index,
    }


# ----------------------------------------------------------------------------
# Statistics
# ----------------------------------------------------------------------------

def _pct(part: float, whole: float) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


def category_statistics(responses: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    valid = [r for r in responses if r["is_valid"] and r["processed_value"] is not None]

    distribution = Counter(r["display_value"] for r in valid)
    # Ties are broken by value so the order does not depend on row order
    common = sorted(distribution.items(), key=lambda item: (-item[1], item[0]))[:5]
    common_responses = [
        {"value": value, "count": count, "percentage": _pct(count, len(valid))}
        for value, count in common
    ]

    numeric = []
    for r in valid:
        value = r["processed_value"]
        if isinstance(value, bool):
            numeric.append(1 if value else 0)
        elif isinstance(value, (int, float)):
            numeric.append(value)

    stats: Dict[str, Any] = {
        "average_score": None,
        "total_score": None,
        "max_possible_score": None,
        "score_percentage": None,
        "response_distribution": dict(sorted(distribution.items())),
        "common_responses": common_responses,
    }
    if numeric:
        total = sum(numeric)
        max_possible = len(numeric) * DEFAULT_SCALE_MAX
        stats.update(
            average_score=round(total / len(numeric), 2),
            total_score=round(total, 2),
            max_possible_score=max_possible,
            score_percentage=_pct(total, max_possible),
        )

    stats["insights"] = category_insights(responses, common_responses, stats["average_score"])
    return stats


def category_insights(
    responses: Sequence[Dict[str, Any]],
    common_responses: Sequence[Dict[str, Any]],
    average_score: Optional[float],
) -> List[str]:
    insights = []
    completion = _pct(sum(1 for r in responses if r["is_valid"]), len(responses))
    if completion < 80:
        insights.append(
            f"Low completion rate ({completion:.1f}%) - consider reviewing question clarity"
        )

    if average_score is not None:
        if average_score >= 8:
            insights.append("Strong performance in this category")
        elif average_score <= 4:
            insights.append("Area of concern - may need attention")
        else:
            insights.append("Moderate performance - room for improvement")

    if common_responses and common_responses[0]["percentage"] > 70 and len(responses) > 1:
        top = common_responses[0]
        insights.append(
            f'Highly consistent responses ({top["percentage"]:.1f}% gave "{top["value"]}")'
        )
    return insights


def group_by_category(mapped: Sequence[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for response in mapped:
        grouped.setdefault(response["category"], []).append(response)

    categories = {}
    for name, responses in grouped.items():
        answered = sum(1 for r in responses if r["is_valid"] and r["processed_value"] is not None)
        categories[name] = {
            "category_name": name,
            "total_questions": len(responses),
            "answered_questions": answered,
            "completion_rate": _pct(answered, len(responses)),
            "statistics": category_statistics(responses),
            "responses": list(responses),
        }
    return categories


def assess_data_quality(mapped: Sequence[Dict[str, Any]]) -> str:
    rate = _pct(sum(1 for r in mapped if r["is_valid"]), len(mapped))
    if rate >= 95:
        return "excellent"
    if rate >= 85:
        return "good"
    if rate >= 70:
        return "fair"
    return "poor"


def overall_statistics(
    categories: Dict[str, Dict[str, Any]],
    mapped: Sequence[Dict[str, Any]],
    brain_o_meter_score: Optional[int],
) -> Dict[str, Any]:
    category_scores = {
        name: c["statistics"]["score_percentage"]
        for name, c in categories.items()
        if c["statistics"]["score_percentage"] is not None
    }
    return {
        "brain_o_meter_score": brain_o_meter_score,
        "category_scores": category_scores,
        "category_average_score": score_from_category_scores(category_scores),
        "strength_areas": [n for n, s in category_scores.items() if s >= STRENGTH_THRESHOLD],
        "concern_areas": [n for n, s in category_scores.items() if s <= CONCERN_THRESHOLD],
        "completion_rate": _pct(
            sum(1 for r in mapped if r["is_valid"] and r["raw_value"] is not None), len(mapped)
        ),
        "data_quality": assess_data_quality(mapped),
    }


def overall_insights(stats: Dict[str, Any]) -> List[str]:
    insights = []
    if stats["completion_rate"] >= 90:
        insights.append("Excellent survey completion rate indicates high engagement")
    elif stats["completion_rate"] < 70:
        insights.append("Low completion rate may indicate survey length or complexity issues")

    score = stats["brain_o_meter_score"]
    if score is not None and score >= 80:
        insights.append("Strong overall brain health indicators")
    elif score is not None and score <= 50:
        insights.append("Several areas may benefit from attention and support")

    if stats["strength_areas"]:
        insights.append(f"Strength areas: {', '.join(stats['strength_areas'])}")
    if stats["concern_areas"]:
        insights.append(f"Areas needing attention: {', '.join(stats['concern_areas'])}")
    if stats["data_quality"] == "poor":
        insights.append(
            "Data quality concerns detected - results should be interpreted with caution"
        )
    return insights


def recommendations(stats: Dict[str, Any]) -> List[str]:
    result = []
    score = stats["brain_o_meter_score"]
    if score is not None and score < 50:
        result.append("Consider additional support in key developmental areas")
    for area in stats["concern_areas"]:
        result.append(f"Discuss {area.replace('_', ' ')} with your practitioner")
    result.append("Continue regular assessments to track progress")
    return result


def age_on(date_of_birth: date, on: date) -> int:
    age = on.year - date_of_birth.year
    if (on.month, on.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ----------------------------------------------------------------------------
# Assembly
# ----------------------------------------------------------------------------

def build_report_content(
    assessment: Assessment,
    rows: Sequence[Tuple[SurveyResponse, Optional[SurveyQuestionDefinition]]],
    report_type: str = "standard",
    chart_service: Optional[ChartService] = None,
) -> Dict[str, Any]:
    """Pure content builder for one assessment."""
    if report_type not in REPORT_TYPES:
        raise ReportBuildError(
            f"Unknown report type: {report_type}", details={"report_type": report_type}
        )
    chart_service = chart_service or ChartService()

    child = assessment.child
    reference_day = (assessment.completed_at or assessment.started_at).date()
    child_summary = {
        "name": child.full_name,
        "age": age_on(child.date_of_birth, reference_day),
        "gender": child.gender,
    }
    practice = assessment.practice
    practice_summary = (
        {"name": practice.name, "primary_color": practice.primary_color} if practice else None
    )
    assessment_summary = {
        "id": str(assessment.id),
        "brain_o_meter_score": assessment.brain_o_meter_score,
        "completed_at": _iso(assessment.completed_at),
        "started_at": _iso(assessment.started_at),
        "status": assessment.status,
    }

    mapped = [map_response(response, question) for response, question in rows]
    categories = group_by_category(mapped)
    stats = overall_statistics(categories, mapped, assessment.brain_o_meter_score)
    insights = overall_insights(stats)

    metadata = {
        "assessment_id": str(assessment.id),
        "report_type": report_type,
        "total_responses": len(mapped),
        "data_quality": stats["data_quality"],
        "validation_errors": [
            f"Question {r['question_id']}: {error}"
            for r in mapped
            for error in r["validation_errors"]
        ],
    }

    key_findings = insights[:3] or ["Assessment completed successfully"]
    summary = {
        "overview": (
            f"{child_summary['name']} completed the assessment with a Brain-O-Meter score "
            f"of {assessment.brain_o_meter_score}/100."
        ),
        "key_findings": key_findings,
        "total_questions": len(mapped),
        "completion_status": "completed" if mapped else "incomplete",
    }

    if report_type == "summary":
        return {
            "child": child_summary,
            "practice": practice_summary,
            "assessment": assessment_summary,
            "metadata": metadata,
            "summary": summary,
            "key_insights": key_findings,
        }

    content = {
        "child": child_summary,
        "practice": practice_summary,
        "assessment": assessment_summary,
        "metadata": metadata,
        "categories": categories,
        "overall_statistics": stats,
        "insights": insights,
        "charts": chart_service.build_charts(
            categories,
            stats["category_scores"],
            assessment.brain_o_meter_score or 0,
        ),
        "summary": summary,
        "recommendations": recommendations(stats),
    }

    if report_type == "detailed":
        content["detailed_analysis"] = {
            "response_patterns": {
                name: c["statistics"]["common_responses"] for name, c in categories.items()
            },
            "strengths": stats["strength_areas"],
            "areas_for_improvement": stats["concern_areas"],
        }
        content["raw_responses"] = mapped

    return content


class ReportAssembler:
    """Builds and stores reports for completed assessments.

    ``assemble`` may be called any number of times. Neither method touches the
    assessment or its responses.
    """

    def __init__(self, db: AsyncSession, chart_service: Optional[ChartService] = None):
        self.db = db
        self.assessment_repository = AssessmentRepository(db)
        self.response_repository = SurveyResponseRepository(db)
        self.report_repository = ReportRepository(db)
        self.chart_service = chart_service or ChartService()

    async def assemble(self, assessment_id: uuid.UUID, report_type: str = "standard") -> Dict[str, Any]:
        """Build report content from persisted state.

        Raises:
            ReportBuildError: on any failure, including store errors.
        """
        try:
            assessment = await self.assessment_repository.get_with_child(assessment_id)
            if assessment is None:
                raise ReportBuildError(
                    f"Assessment {assessment_id} not found",
                    details={"assessment_id": str(assessment_id)},
                )
            if not assessment.is_completed:
                raise ReportBuildError(
                    f"Assessment {assessment_id} is not completed",
                    details={"assessment_id": str(assessment_id), "status": assessment.status},
                )

            rows = await self.response_repository.get_with_questions(assessment_id)
            content = build_report_content(assessment, rows, report_type, self.chart_service)
        except ReportBuildError:
            logger.warning("report_build_rejected", assessment_id=str(assessment_id), report_type=report_type)
            raise
        except Exception as e:
            logger.error(
                "report_build_failed",
                assessment_id=str(assessment_id),
                report_type=report_type,
                error=str(e),
            )
            raise ReportBuildError(
                f"Failed to build report for assessment {assessment_id}",
                details={"assessment_id": str(assessment_id), "error": str(e)},
            ) from e

        logger.info(
            "report_assembled",
            assessment_id=str(assessment_id),
            report_type=report_type,
            responses=content["metadata"]["total_responses"],
        )
        return content

    async def persist(
        self,
        assessment_id: uuid.UUID,
        content: Dict[str, Any],
        report_type: str = "standard",
        practice_id: Optional[uuid.UUID] = None,
    ) -> Report:
        """Upsert the report on ``(assessment_id, report_type)``. Flushes only.

        Raises:
            StorageError: the upsert failed.
        """
        try:
            report = await self.report_repository.upsert(
                assessment_id, report_type, content, practice_id
            )
        except SQLAlchemyError as e:
            logger.error("report_persist_failed", assessment_id=str(assessment_id), error=str(e))
            raise StorageError(
                "Failed to store report",
                details={"assessment_id": str(assessment_id)},
            ) from e

        logger.info("report_persisted", report_id=str(report.id), assessment_id=str(assessment_id))
        return report
