# labflow/domains/lims/review.py

"""
완료된 오더의 검토(수동 검토, AI 검토)를 구현하는 모듈입니다.

수동 검토
    completed 상태에서만 가능합니다. 조정값마다 새 측정값과 같은 기준(판정 규칙 또는 기준 범위)으로
    허용 범위를 확인하며, 하나라도 벗어나면 실패한 항목을 모두 나열하고 전체를 거부합니다.

AI 검토
    completed / reviewed / ai_reviewed 상태에서 실행할 수 있습니다 (재실행 허용).
    식별 정보를 제외한 결과 목록을 외부 텍스트 생성기에 보내고, 응답은 항상 json_repair를 거쳐
    느슨한 중간 구조(AssessmentPayload)로 읽은 뒤 ReviewAssessment로 변환합니다.
    복구가 fallback 단계까지 내려가면 ParseDegradedWarning을 발생시키고, 파싱 실패를 보고하는
    최소 평가로 대체하여 오더가 멈추지 않도록 합니다. 평가 자체는 저장하지 않고 코멘트로만 남깁니다.
"""

import json
import logging
import warnings
from datetime import datetime, UTC
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field as PydanticField, field_validator
from sqlmodel.ext.asyncio.session import AsyncSession

from labflow.core.config import settings
from labflow.core.exceptions import ParseDegradedWarning, ValidationError
from labflow.domains.lims import crud as lims_crud
from labflow.domains.lims import flagging, json_repair, workflow
from labflow.domains.lims import models as lims_models
from labflow.domains.lims import schemas as lims_schemas
from labflow.domains.lims.models import OrderStatus
from labflow.domains.shared.services import record_event
from labflow.services.text_generation import TextGenerator

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

AI_REVIEWABLE_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.REVIEWED, OrderStatus.AI_REVIEWED})
OVERALL_STATUSES = ("normal", "abnormal", "critical")
CONFIDENCE_LEVELS = ("high", "medium", "low")

SYSTEM_INSTRUCTION = (
    "You are a professional clinical laboratory specialist. Analyse the test results and give an accurate, "
    "concise assessment. IMPORTANT: return valid JSON only, make sure every string is closed and the "
    "output is not cut off."
)

PROMPT_TEMPLATE = """Below are the CBC (Complete Blood Count) results of a patient:
{payload}

Please:
1. Analyse any abnormal values.
2. Keep it brief (at most 200 words for the assessment, at most 100 words for each reason).
3. Explain what the abnormal values mean and why they matter.
4. Conclude with an overall status.

IMPORTANT:
- ONLY analyse and explain. Do NOT suggest changing measured values.
- Abnormal values are important signals and must NOT be "corrected" to normal values.
- Recommend how to proceed (for example: "Repeat the test", "Consult a physician", "Monitor").
- Use only parameter_id values that appear in the results above.

Answer with JSON in this format (no markdown, JSON only):
{{
  "assessment": "overall assessment",
  "recommendations": [
    {{"parameter_id": 0, "current_value": 0, "reason": "short explanation", "confidence": "high|medium|low"}}
  ],
  "flagged_issues": ["short list of notable issues"],
  "overall_status": "normal|abnormal|critical"
}}
"""


# =============================================================================
# 1. 수동 검토
# =============================================================================
async def _demographics(
    db: AsyncSession, order: lims_models.TestOrder
) -> Tuple[Optional[str], Optional[str]]:
    patient = await lims_crud.patient.get(db, order.patient_id) if order.patient_id else None
    if patient is None:
        return None, None
    gender = getattr(patient.gender, "value", patient.gender)
    return gender, flagging.age_group_for(patient.date_of_birth)


async def review_order(
    db: AsyncSession,
    *,
    order: lims_models.TestOrder,
    adjustments: Sequence[lims_schemas.ReviewAdjustment] = (),
    comment: Optional[str] = None,
    actor_id: Optional[int] = None,
) -> lims_models.TestOrder:
    order_id = order.id
    status = OrderStatus(order.status)
    if status != OrderStatus.COMPLETED:
        raise ValidationError(
            f"Cannot review test order with status: {status.value}. Only 'completed' orders can be reviewed."
        )

    entries = {entry.parameter_id: entry for entry in order.results}
    parameters = {p.id: p for p in await lims_crud.parameter.get_many(db, [a.parameter_id for a in adjustments])}
    rules = await lims_crud.flagging_rule.get_for_parameters(db, parameters.keys())
    gender, age_group = await _demographics(db, order)

    errors: List[str] = []
    seen = set()
    for adjustment in adjustments:
        parameter = parameters.get(adjustment.parameter_id)
        if parameter is None:
            errors.append(f"Parameter {adjustment.parameter_id}: not found")
            continue
        if parameter.id not in entries:
            errors.append(f"{parameter.code}: no result on this order")
            continue
        if parameter.id in seen:
            errors.append(f"{parameter.code}: adjusted more than once")
            continue
        seen.add(parameter.id)
        problem = flagging.check_adjustment(
            adjustment.new_value, parameter.id, rules, gender, age_group,
            flagging.fallback_range(parameter.normal_range, gender),
        )
        if problem:
            errors.append(f"{parameter.code}: {problem}")
    if errors:
        raise ValidationError(f"Invalid adjustments: {'; '.join(errors)}", errors=errors)

    now = datetime.now(UTC)
    for adjustment in adjustments:
        parameter = parameters[adjustment.parameter_id]
        entry = entries[parameter.id]
        result = flagging.evaluate(
            adjustment.new_value, parameter.id, rules, gender, age_group,
            flagging.fallback_range(parameter.normal_range, gender),
        )
        entry.value = adjustment.new_value
        entry.reference_range = result.reference_range
        entry.is_flagged = result.is_flagged
        entry.flag_severity = result.severity
        entry.flagging_rule_id = result.rule_id
        entry.adjusted_by_user_id = actor_id
        entry.adjusted_at = now
        db.add(entry)

    workflow.transition(order, OrderStatus.REVIEWED, actor_id)
    db.add(order)
    comment = (comment or "").strip()
    if comment:
        db.add(workflow.new_comment(order_id, comment, actor_id))
    order_number = order.order_number
    await db.commit()

    logger.info("오더 %s 수동 검토 완료 (조정 %d건)", order_number, len(adjustments))
    await record_event(
        db,
        action_type="ORDER_REVIEWED",
        entity_type="TestOrder",
        entity_id=order_id,
        actor_id=actor_id,
        description=f"Test order {order_number} reviewed",
        details={"adjustments": [a.model_dump() for a in adjustments], "commented": bool(comment)},
    )
    return await workflow.require_order(db, order_id)


# =============================================================================
# 2. AI 응답 파싱
# =============================================================================
class AssessmentPayload(BaseModel):
    """생성기 응답의 느슨한 중간 구조. 모든 필드가 선택이며 목록은 기본값이 빈 목록입니다."""

    model_config = ConfigDict(extra="ignore")

    assessment: Optional[Any] = None
    overall_status: Optional[Any] = None
    flagged_issues: List[Any] = PydanticField(default_factory=list)
    recommendations: List[Any] = PydanticField(default_factory=list)

    @field_validator("flagged_issues", "recommendations", mode="before")
    @classmethod
    def _as_list(cls, value: Any) -> List[Any]:
        if value is None:
            return []
        if isinstance(value, list):
            return value
        return [value]


def _as_parameter_id(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def to_assessment(payload: AssessmentPayload, known: Mapping[int, Tuple[str, float]]) -> lims_schemas.ReviewAssessment:
    """
    중간 구조를 ReviewAssessment로 변환합니다. known은 오더의 {parameter_id: (이름, 값)} 입니다.
    오더에 없는 항목이나 사유가 없는 권고는 버리며, 권고를 지어내지 않습니다.
    """
    status = str(payload.overall_status or "").strip().lower()
    if status not in OVERALL_STATUSES:
        status = "abnormal"

    recommendations = []
    for raw in payload.recommendations:
        if not isinstance(raw, dict):
            continue
        parameter_id = _as_parameter_id(raw.get("parameter_id"))
        reason = str(raw.get("reason") or "").strip()
        if parameter_id not in known or not reason:
            continue
        name, value = known[parameter_id]
        confidence = str(raw.get("confidence") or "").strip().lower()
        current_value = _as_float(raw.get("current_value"))
        recommendations.append(lims_schemas.Recommendation(
            parameter_id=parameter_id,
            parameter_name=name,
            current_value=current_value if current_value is not None else value,
            reason=reason,
            confidence=confidence if confidence in CONFIDENCE_LEVELS else "low",
        ))

    return lims_schemas.ReviewAssessment(
        overall_status=status,
        assessment=str(payload.assessment or "").strip(),
        flagged_issues=[str(issue).strip() for issue in payload.flagged_issues if str(issue).strip()],
        recommendations=recommendations,
    )


def parse_assessment(
    text: str, known: Mapping[int, Tuple[str, float]]
) -> Tuple[lims_schemas.ReviewAssessment, json_repair.RepairResult]:
    repaired = json_repair.repair_json(text)
    if not isinstance(repaired.data, dict):
        repaired = json_repair.RepairResult(
            data=json_repair.fallback_structure(text),
            step=json_repair.RepairStep.FALLBACK,
            degraded=True,
        )
    if repaired.degraded:
        logger.warning("AI 응답을 파싱하지 못해 fallback 평가를 사용합니다. (응답 길이 %d)", len(text or ""))
        warnings.warn("AI response could not be parsed; using fallback assessment", ParseDegradedWarning)
    elif repaired.step != json_repair.RepairStep.STRICT:
        logger.info("AI 응답을 '%s' 단계에서 복구했습니다.", repaired.step.value)

    payload = AssessmentPayload.model_validate(repaired.data)
    return to_assessment(payload, known), repaired


def format_ai_comment(assessment: lims_schemas.ReviewAssessment) -> str:
    lines = [f"[AI Review - {assessment.overall_status.upper()}]", "", assessment.assessment, ""]
    if assessment.flagged_issues:
        lines.append("Flagged issues:")
        lines.extend(f"- {issue}" for issue in assessment.flagged_issues)
        lines.append("")
    if assessment.recommendations:
        lines.append("Recommendations:")
        lines.extend(
            f"- {rec.parameter_name or rec.parameter_id}: {rec.reason}" for rec in assessment.recommendations
        )
    return "\n".join(lines).strip()


# =============================================================================
# 3. AI 검토
# =============================================================================
def build_ai_payload(
    results: Sequence[lims_models.ResultEntry],
    parameters: Mapping[int, lims_models.Parameter],
    gender: Optional[str],
    age_group: Optional[str],
) -> Dict[str, Any]:
    """이름, 생년월일 등 식별 정보 없이 성별/연령대와 결과만 담습니다."""
    test_results = []
    for entry in results:
        parameter = parameters.get(entry.parameter_id)
        test_results.append({
            "parameter_id": entry.parameter_id,
            "code": parameter.code if parameter else None,
            "name": parameter.name if parameter else None,
            "value": entry.value,
            "unit": entry.unit,
            "reference_range": entry.reference_range,
            "flagged": entry.is_flagged,
            "severity": entry.flag_severity.value if entry.flag_severity else None,
        })
    return {
        "patient": {"gender": gender or "unknown", "age_group": age_group or "unknown"},
        "test_results": test_results,
    }


async def ai_review(
    db: AsyncSession,
    *,
    order: lims_models.TestOrder,
    generator: TextGenerator,
    actor_id: Optional[int] = None,
    persist: bool = True,
) -> Tuple[lims_models.TestOrder, lims_schemas.ReviewAssessment, bool]:
    """
    AI 검토를 실행하고 (오더, 평가, degraded 여부)를 반환합니다.
    persist=False이면 오더를 변경하지 않고 평가만 돌려줍니다.
    생성기 오류(ExternalServiceError)는 재시도하지 않고 그대로 전파됩니다.
    """
    order_id = order.id
    status = OrderStatus(order.status)
    if status not in AI_REVIEWABLE_STATUSES:
        raise ValidationError(
            f"Cannot run AI review on test order with status: {status.value}. "
            "Only completed or reviewed orders can be reviewed."
        )
    if not order.results:
        raise ValidationError("Test order has no results to review.")

    parameters = {p.id: p for p in await lims_crud.parameter.get_many(db, [e.parameter_id for e in order.results])}
    gender, age_group = await _demographics(db, order)
    payload = build_ai_payload(order.results, parameters, gender, age_group)
    known = {
        entry.parameter_id: (
            parameters[entry.parameter_id].name if entry.parameter_id in parameters else str(entry.parameter_id),
            entry.value,
        )
        for entry in order.results
    }

    text = await generator.generate(
        PROMPT_TEMPLATE.format(payload=json.dumps(payload, indent=2, ensure_ascii=False)),
        SYSTEM_INSTRUCTION,
        settings.GEMINI_MAX_OUTPUT_TOKENS,
        settings.GEMINI_TEMPERATURE,
    )
    assessment, repaired = parse_assessment(text, known)

    if not persist:
        return order, assessment, repaired.degraded

    workflow.transition(order, OrderStatus.AI_REVIEWED, actor_id)
    db.add(order)
    db.add(workflow.new_comment(order_id, format_ai_comment(assessment), actor_id))
    order_number = order.order_number
    await db.commit()

    logger.info("오더 %s AI 검토 완료 (%s)", order_number, assessment.overall_status)
    await record_event(
        db,
        action_type="ORDER_AI_REVIEWED",
        entity_type="TestOrder",
        entity_id=order_id,
        actor_id=actor_id,
        description=f"Test order {order_number} reviewed by AI",
        details={
            "overall_status": assessment.overall_status,
            "recommendations": len(assessment.recommendations),
            "repair_step": repaired.step.value,
            "degraded": repaired.degraded,
        },
    )
    return await workflow.require_order(db, order_id), assessment, repaired.degraded
