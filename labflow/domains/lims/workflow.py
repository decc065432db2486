# labflow/domains/lims/workflow.py

"""
검체 처리 워크플로우(오더 상태 머신)를 구현하는 모듈입니다.

    pending -> running -> completed -> reviewed / ai_reviewed
    failed / cancelled 는 진행 중(pending, running)인 오더에서만 도달할 수 있습니다.

상태 변경은 transition() 한 곳에서만 이루어지며, TRANSITIONS 표에 없는 전이는 ValidationError입니다.
어떤 상태도 pending으로 되돌아가지 않습니다.

저장 계층의 보호 장치:
- 진행 중 오더의 바코드는 live_barcode 유일 제약으로 보호됩니다. 동시에 같은 바코드로 접수하면
  한쪽은 IntegrityError가 발생하며, 이때 먼저 생성된 오더를 그대로 반환합니다.
- 시약 잔량은 결과 1건마다 compare-and-swap 방식으로 차감합니다 (inv.crud.try_consume).

변경 작업은 모두 "업무 데이터 커밋 -> 감사 로그 기록 -> 상세 재조회" 순서로 진행합니다.
감사 로그 기록 실패 시 세션이 롤백되므로 반환 값은 항상 다시 읽어온 오더입니다.
"""

import logging
import random
import uuid
from datetime import datetime, timedelta, UTC
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError
from sqlmodel.ext.asyncio.session import AsyncSession

from labflow.core.config import settings
from labflow.core.exceptions import NotFoundError, ResourceError, ValidationError
from labflow.domains.fms import crud as fms_crud
from labflow.domains.fms.models import InstrumentMode
from labflow.domains.inv import crud as inv_crud, reagent_gate
from labflow.domains.inv import models as inv_models
from labflow.domains.lims import crud as lims_crud
from labflow.domains.lims import flagging, generator, hl7
from labflow.domains.lims import models as lims_models
from labflow.domains.lims import schemas as lims_schemas
from labflow.domains.lims.models import MessageStatus, OrderStatus
from labflow.domains.shared.services import record_event

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


TRANSITIONS: Dict[OrderStatus, frozenset] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.RUNNING, OrderStatus.FAILED, OrderStatus.CANCELLED,
    }),
    OrderStatus.RUNNING: frozenset({OrderStatus.COMPLETED, OrderStatus.FAILED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset({OrderStatus.REVIEWED, OrderStatus.AI_REVIEWED}),
    OrderStatus.REVIEWED: frozenset({OrderStatus.AI_REVIEWED}),
    # AI 검토는 다시 실행할 수 있습니다.
    OrderStatus.AI_REVIEWED: frozenset({OrderStatus.AI_REVIEWED}),
    OrderStatus.FAILED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}
LIVE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.RUNNING})


# =============================================================================
# 1. 상태 전이
# =============================================================================
def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return OrderStatus(target) in TRANSITIONS[OrderStatus(current)]


def transition(
    order: lims_models.TestOrder,
    target: OrderStatus,
    actor_id: Optional[int] = None,
    reason: Optional[str] = None,
) -> lims_models.TestOrder:
    """오더 상태를 변경하는 유일한 지점입니다. 커밋은 호출자가 담당합니다."""
    current = OrderStatus(order.status)
    target = OrderStatus(target)
    if not can_transition(current, target):
        raise ValidationError(f"Invalid status transition: {current.value} -> {target.value}")

    now = datetime.now(UTC)
    order.status = target
    if target == OrderStatus.RUNNING:
        order.run_at = now
        order.run_by_user_id = actor_id
    elif target == OrderStatus.COMPLETED:
        order.completed_at = now
        if order.run_by_user_id is None:
            order.run_by_user_id = actor_id
    elif target == OrderStatus.REVIEWED:
        order.reviewed_at = now
        order.reviewed_by_user_id = actor_id
    elif target == OrderStatus.AI_REVIEWED:
        order.ai_reviewed_at = now
    elif target in (OrderStatus.FAILED, OrderStatus.CANCELLED):
        order.failure_reason = reason

    if target not in LIVE_STATUSES:
        order.live_barcode = None
    order.updated_at = now
    return order


def generate_order_number(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(UTC)
    return f"ORD-{now:%Y%m%d%H%M%S}-{uuid.uuid4().hex[:4].upper()}"


def generate_barcode() -> str:
    return f"BC-{uuid.uuid4().hex[:10].upper()}"


async def require_order(db: AsyncSession, order_id: int) -> lims_models.TestOrder:
    order = await lims_crud.test_order.get_detail(db, order_id)
    if order is None:
        raise NotFoundError(f"Test order {order_id} not found.")
    return order


# =============================================================================
# 2. 접수 (Intake) / 검체 처리
# =============================================================================
async def intake(
    db: AsyncSession,
    *,
    instrument_id: int,
    actor_id: Optional[int] = None,
    barcode: Optional[str] = None,
    patient_id: Optional[int] = None,
) -> Tuple[lims_models.TestOrder, bool]:
    """
    바코드로 진행 중인 오더를 찾아 반환하고, 없으면 새 pending 오더를 생성합니다.
    반환 값은 (오더, 새로 생성 여부) 입니다.
    """
    barcode = (barcode or "").strip() or None
    if barcode:
        existing = await lims_crud.test_order.get_live_by_barcode(db, barcode=barcode)
        if existing is not None:
            logger.info("바코드 %s의 진행 중 오더 %s를 재사용합니다.", barcode, existing.order_number)
            return await require_order(db, existing.id), False

    mode = await fms_crud.instrument.get_operable_mode(db, instrument_id)
    if mode != InstrumentMode.READY:
        raise ValidationError(f"Instrument is not ready (current mode: {mode.value})")

    if patient_id is not None and await lims_crud.patient.get(db, patient_id) is None:
        raise ValidationError(f"Patient {patient_id} not found.")

    report = await inv_crud.gate_report(db, instrument_id=instrument_id)
    if not report.ok:
        raise ValidationError(
            report.message,
            errors=[f"{name}: missing" for name in report.missing]
            + [f"{name}: insufficient quantity" for name in report.insufficient],
        )

    barcode = barcode or generate_barcode()
    order = lims_models.TestOrder(
        order_number=generate_order_number(),
        patient_id=patient_id,
        instrument_id=instrument_id,
        barcode=barcode,
        live_barcode=barcode,
        status=OrderStatus.PENDING,
        created_by_user_id=actor_id,
    )
    db.add(order)
    try:
        await db.flush()
        order_id, order_number = order.id, order.order_number
        await db.commit()
    except IntegrityError:
        # 같은 바코드의 동시 접수에서 진 경우: 먼저 생성된 오더를 반환합니다.
        await db.rollback()
        winner = await lims_crud.test_order.get_live_by_barcode(db, barcode=barcode)
        if winner is None:
            raise
        logger.info("바코드 %s 동시 접수: 기존 오더 %s를 반환합니다.", barcode, winner.order_number)
        return await require_order(db, winner.id), False

    logger.info("새 검사 오더 생성: %s (바코드 %s)", order_number, barcode)
    await record_event(
        db,
        action_type="ORDER_CREATED",
        entity_type="TestOrder",
        entity_id=order_id,
        actor_id=actor_id,
        description=f"Test order {order_number} created for barcode {barcode}",
        details={"barcode": barcode, "instrument_id": instrument_id, "patient_id": patient_id},
    )
    return await require_order(db, order_id), True


async def create_synthetic_message(
    db: AsyncSession,
    *,
    order: lims_models.TestOrder,
    actor_id: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> Optional[lims_models.InterchangeMessage]:
    """
    패널 전체의 측정값을 합성하여 HL7 유사 메시지로 인코딩하고 pending 상태로 저장합니다.
    합성할 항목이 없으면 None을 반환합니다.
    """
    panel = await lims_crud.parameter.get_panel(db)
    patient = await lims_crud.patient.get(db, order.patient_id) if order.patient_id else None
    instrument = await fms_crud.instrument.get(db, order.instrument_id) if order.instrument_id else None

    values = generator.generate_panel_values(panel, gender=patient.gender if patient else None, rng=rng)
    if not values:
        logger.warning("오더 %s: 합성할 분석 항목이 없어 메시지를 생성하지 않습니다.", order.order_number)
        return None

    now = datetime.now(UTC)
    message_text = hl7.encode_oru(
        hl7.MessageHeader(
            sending_application=instrument.code if instrument else "Instrument",
            receiving_facility=settings.MESSAGE_RECEIVING_FACILITY,
            timestamp=now,
        ),
        hl7.PatientSegment(
            patient_code=patient.patient_code,
            full_name=patient.full_name,
            date_of_birth=patient.date_of_birth,
            gender=patient.gender,
        ) if patient else None,
        hl7.OrderSegment(
            barcode=order.barcode or "",
            order_number=order.order_number,
            instrument_code=instrument.code if instrument else "",
            observed_at=now,
        ),
        [
            hl7.Observation(
                code=v.code, value=v.value, unit=v.unit, reference_range=v.reference_range, flag=v.flag,
            )
            for v in values
        ],
    )

    message = lims_models.InterchangeMessage(
        order_id=order.id,
        barcode=order.barcode or "",
        instrument_id=order.instrument_id,
        message_text=message_text,
        status=MessageStatus.PENDING,
        can_delete=False,
        sent_at=now,
        created_by_user_id=actor_id,
    )
    db.add(message)
    await db.flush()
    message_id = message.id
    await db.commit()

    await record_event(
        db,
        action_type="MESSAGE_CREATED",
        entity_type="InterchangeMessage",
        entity_id=message_id,
        actor_id=actor_id,
        description=f"Interchange message with {len(values)} result(s) created for order {order.order_number}",
        details={"order_id": order.id, "barcode": order.barcode},
    )
    return await lims_crud.interchange_message.get_fresh(db, message_id)


async def process_sample(
    db: AsyncSession,
    *,
    instrument_id: int,
    actor_id: Optional[int] = None,
    barcode: Optional[str] = None,
    patient_id: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> Tuple[lims_models.TestOrder, bool, Optional[lims_models.InterchangeMessage]]:
    """접수 후 새 오더에 대해서만 합성 측정값 메시지를 생성합니다."""
    order, created = await intake(
        db, instrument_id=instrument_id, actor_id=actor_id, barcode=barcode, patient_id=patient_id
    )
    if not created:
        return order, False, None
    order_id = order.id
    message = await create_synthetic_message(db, order=order, actor_id=actor_id, rng=rng)
    return await require_order(db, order_id), True, message


# =============================================================================
# 3. 결과 반영 (Synthesize / Sync)
# =============================================================================
async def _resolve_parameters(
    db: AsyncSession,
    values: Sequence[lims_schemas.ResultValueIn],
    existing_ids: Optional[set] = None,
) -> List[Tuple[lims_schemas.ResultValueIn, lims_models.Parameter]]:
    """분석 항목을 확인합니다. 한 오더에는 분석 항목당 결과가 하나만 존재합니다."""
    existing_ids = existing_ids or set()
    resolved, errors, seen = [], [], set()
    for value in values:
        if value.parameter_id is not None:
            parameter = await lims_crud.parameter.get(db, value.parameter_id)
            label = str(value.parameter_id)
        else:
            parameter = await lims_crud.parameter.get_by_code(db, code=value.parameter_code)
            label = value.parameter_code
        if parameter is None:
            errors.append(f"Parameter {label} not found")
            continue
        if parameter.id in seen:
            errors.append(f"Parameter {parameter.code} appears more than once")
            continue
        if parameter.id in existing_ids:
            errors.append(f"Parameter {parameter.code} already has a result on this order")
            continue
        seen.add(parameter.id)
        resolved.append((value, parameter))
    if errors:
        raise ValidationError("Invalid result values.", errors=errors)
    return resolved


def _draw_for(value: lims_schemas.ResultValueIn, parameter: lims_models.Parameter) -> Optional[reagent_gate.Draw]:
    """로트가 지정되었거나 분석 항목에 시약 유형이 있으면 시약을 소모합니다."""
    if not value.reagent_lot_number and not parameter.reagent_name:
        return None
    return reagent_gate.Draw(
        reagent_name=parameter.reagent_name if not value.reagent_lot_number else None,
        quantity=value.quantity_used or settings.REAGENT_USAGE_PER_RESULT,
        lot_number=value.reagent_lot_number,
    )


async def apply_results(
    db: AsyncSession,
    *,
    order: lims_models.TestOrder,
    values: Sequence[lims_schemas.ResultValueIn],
    actor_id: Optional[int] = None,
) -> lims_models.TestOrder:
    """
    측정값을 오더에 결과로 반영합니다. 전부 반영되거나 전혀 반영되지 않습니다.

    1. 모든 값을 먼저 검증합니다 (분석 항목 확인, 중복 금지, 시약 배정).
    2. 값마다 판정 후 결과를 추가하고, 필요한 시약을 CAS 방식으로 차감합니다.
       차감에 실패하면 전체를 롤백하고 ResourceError를 발생시킵니다.
    3. pending이면 running으로, 패널 전체 결과가 모이면 completed로 전이합니다.
    """
    order_id = order.id
    status = OrderStatus(order.status)
    if status not in LIVE_STATUSES:
        raise ValidationError(f"Cannot add results to an order in status '{status.value}'")
    if not values:
        raise ValidationError("At least one result value is required.")

    resolved = await _resolve_parameters(
        db, values, existing_ids={entry.parameter_id for entry in order.results}
    )

    draws = [(index, _draw_for(value, parameter)) for index, (value, parameter) in enumerate(resolved)]
    needed = [(index, draw) for index, draw in draws if draw is not None]
    consumptions: Dict[int, reagent_gate.Consumption] = {}
    if needed:
        if order.instrument_id is None:
            raise ValidationError("Order has no instrument; reagent consumption cannot be recorded.")
        installations = await inv_crud.consumable_installation.get_by_instrument(
            db, instrument_id=order.instrument_id, in_use_only=True
        )
        plan = reagent_gate.allocate(installations, [draw for _, draw in needed])
        consumptions = {index: consumption for (index, _), consumption in zip(needed, plan)}

    patient = await lims_crud.patient.get(db, order.patient_id) if order.patient_id else None
    gender = patient.gender if patient else None
    age_group = flagging.age_group_for(patient.date_of_birth) if patient else None
    rules = await lims_crud.flagging_rule.get_for_parameters(db, [p.id for _, p in resolved])

    now = datetime.now(UTC)
    flagged_count = 0
    for index, (value, parameter) in enumerate(resolved):
        result = flagging.evaluate(
            value.value,
            parameter.id,
            rules,
            gender=gender,
            age_group=age_group,
            fallback=flagging.fallback_range(parameter.normal_range, gender),
        )
        flagged_count += int(result.is_flagged)
        consumption = consumptions.get(index)
        if consumption is not None:
            consumed = await inv_crud.consumable_installation.try_consume(
                db, installation_id=consumption.installation_id, quantity=consumption.quantity
            )
            if not consumed:
                await db.rollback()
                raise ResourceError(
                    f"Insufficient quantity for reagents: {consumption.reagent_name}.",
                    errors=[
                        f"{consumption.reagent_name} (lot {consumption.lot_number}): "
                        "consumed by another order before this result could be recorded"
                    ],
                )
            db.add(inv_models.ConsumableUsage(
                installation_id=consumption.installation_id,
                order_id=order_id,
                instrument_id=order.instrument_id,
                reagent_name=consumption.reagent_name,
                lot_number=consumption.lot_number,
                quantity_used=consumption.quantity,
                used_by_user_id=actor_id,
                used_at=now,
            ))
        db.add(lims_models.ResultEntry(
            order_id=order_id,
            parameter_id=parameter.id,
            value=value.value,
            unit=value.unit or parameter.unit,
            reference_range=result.reference_range,
            is_flagged=result.is_flagged,
            flag_severity=result.severity,
            flagging_rule_id=result.rule_id,
            reagent_lot_number=consumption.lot_number if consumption else value.reagent_lot_number,
            measured_at=now,
        ))

    if status == OrderStatus.PENDING:
        transition(order, OrderStatus.RUNNING, actor_id)

    panel_ids = {p.id for p in await lims_crud.parameter.get_panel(db)}
    measured_ids = {entry.parameter_id for entry in order.results} | {p.id for _, p in resolved}
    completed = panel_ids <= measured_ids
    if completed:
        transition(order, OrderStatus.COMPLETED, actor_id)

    db.add(order)
    order_number, final_status = order.order_number, OrderStatus(order.status)
    await db.commit()

    logger.info("오더 %s: 결과 %d건 반영 (상태 %s)", order_number, len(resolved), final_status.value)
    await record_event(
        db,
        action_type="RESULTS_ADDED",
        entity_type="TestOrder",
        entity_id=order_id,
        actor_id=actor_id,
        description=f"{len(resolved)} result(s) added to order {order_number}",
        details={
            "parameter_ids": [p.id for _, p in resolved],
            "flagged": flagged_count,
            "status": final_status.value,
            "reagent_consumption": [c.model_dump() for c in consumptions.values()],
        },
    )
    return await require_order(db, order_id)


async def sync_message(
    db: AsyncSession,
    *,
    message_id: int,
    actor_id: Optional[int] = None,
) -> Tuple[lims_models.TestOrder, lims_models.InterchangeMessage, List[hl7.SkippedSegment]]:
    """
    저장된 장비 메시지를 디코딩하여 오더에 반영합니다.
    processed 표시와 오더 반영은 서로 다른 커밋이며, 반영이 실패하면 메시지는 processed로 남아 다시 동기화할 수 있습니다.
    """
    message = await lims_crud.interchange_message.get_fresh(db, message_id)
    if message is None:
        raise NotFoundError(f"Interchange message {message_id} not found.")
    if MessageStatus(message.status) == MessageStatus.SYNCED:
        raise ValidationError("Message has already been synced.")

    decoded = hl7.decode(message.message_text)

    order = None
    if message.order_id is not None:
        order = await lims_crud.test_order.get_detail(db, message.order_id)
    if order is None:
        barcode = message.barcode or decoded.barcode
        live = await lims_crud.test_order.get_live_by_barcode(db, barcode=barcode) if barcode else None
        order = await lims_crud.test_order.get_detail(db, live.id) if live else None
    if order is None:
        raise NotFoundError(f"No test order found for message {message_id}.")

    values, errors = [], []
    for observation in decoded.observations:
        parameter = await lims_crud.parameter.get_by_code(db, code=observation.code)
        if parameter is None:
            errors.append(f"Unknown parameter code '{observation.code}'")
            continue
        values.append(lims_schemas.ResultValueIn(
            parameter_id=parameter.id, value=observation.value, unit=observation.unit or None,
        ))
    if errors:
        raise ValidationError("Message contains unknown parameter codes.", errors=errors)
    if not values:
        raise ValidationError("Message contains no valid observations.")
    if decoded.skipped:
        logger.warning("메시지 %d: 잘못된 세그먼트 %d건을 건너뜁니다.", message_id, len(decoded.skipped))

    order_id = order.id
    message.status = MessageStatus.PROCESSED
    message.order_id = order_id
    message.parsed_results = decoded.model_dump(mode="json")
    db.add(message)
    await db.commit()

    order = await apply_results(db, order=order, values=values, actor_id=actor_id)
    order_number = order.order_number

    message = await lims_crud.interchange_message.get_fresh(db, message_id)
    message.status = MessageStatus.SYNCED
    message.can_delete = True
    message.synced_at = datetime.now(UTC)
    db.add(message)
    await db.commit()

    await record_event(
        db,
        action_type="MESSAGE_SYNCED",
        entity_type="InterchangeMessage",
        entity_id=message_id,
        actor_id=actor_id,
        description=f"Interchange message {message_id} synced into order {order_number}",
        details={"order_id": order_id, "skipped": len(decoded.skipped)},
    )
    return (
        await require_order(db, order_id),
        await lims_crud.interchange_message.get_fresh(db, message_id),
        decoded.skipped,
    )


# =============================================================================
# 4. 취소 / 실패 처리
# =============================================================================
async def _close_order(
    db: AsyncSession,
    *,
    order: lims_models.TestOrder,
    target: OrderStatus,
    actor_id: Optional[int],
    reason: Optional[str],
) -> lims_models.TestOrder:
    order_id, order_number = order.id, order.order_number
    transition(order, target, actor_id, reason=reason)
    db.add(order)
    await db.commit()

    await record_event(
        db,
        action_type=f"ORDER_{target.value.upper()}",
        entity_type="TestOrder",
        entity_id=order_id,
        actor_id=actor_id,
        description=f"Test order {order_number} {target.value}",
        details={"reason": reason},
    )
    return await require_order(db, order_id)


async def cancel(
    db: AsyncSession, *, order: lims_models.TestOrder, actor_id: Optional[int] = None, reason: Optional[str] = None
) -> lims_models.TestOrder:
    return await _close_order(db, order=order, target=OrderStatus.CANCELLED, actor_id=actor_id, reason=reason)


async def fail(
    db: AsyncSession, *, order: lims_models.TestOrder, actor_id: Optional[int] = None, reason: Optional[str] = None
) -> lims_models.TestOrder:
    return await _close_order(db, order=order, target=OrderStatus.FAILED, actor_id=actor_id, reason=reason)


# =============================================================================
# 5. 코멘트 (인덱스 기반)
# =============================================================================
def _clean_text(text: Optional[str]) -> str:
    text = (text or "").strip()
    if not text:
        raise ValidationError("Comment text must not be empty.")
    return text


def comment_at(order: lims_models.TestOrder, index: int) -> lims_models.OrderComment:
    """
    코멘트는 작성 순서(id)의 인덱스로 지정합니다. 삭제된 코멘트도 인덱스를 차지하며,
    범위를 벗어나거나 삭제된 코멘트를 가리키면 NotFoundError입니다.
    """
    comments = sorted(order.comments, key=lambda c: c.id)
    if index < 0 or index >= len(comments) or comments[index].deleted_at is not None:
        raise NotFoundError(f"Comment at index {index} not found.")
    return comments[index]


def new_comment(order_id: int, text: str, actor_id: Optional[int]) -> lims_models.OrderComment:
    return lims_models.OrderComment(order_id=order_id, comment_text=text, created_by_user_id=actor_id)


async def add_comment(
    db: AsyncSession, *, order: lims_models.TestOrder, text: str, actor_id: Optional[int] = None
) -> lims_models.TestOrder:
    text = _clean_text(text)
    order_id = order.id
    db.add(new_comment(order_id, text, actor_id))
    await db.commit()

    await record_event(
        db, action_type="COMMENT_ADDED", entity_type="TestOrder", entity_id=order_id, actor_id=actor_id,
        description="Comment added",
    )
    return await require_order(db, order_id)


async def update_comment(
    db: AsyncSession, *, order: lims_models.TestOrder, index: int, text: str, actor_id: Optional[int] = None
) -> lims_models.TestOrder:
    text = _clean_text(text)
    order_id = order.id
    comment = comment_at(order, index)
    comment.comment_text = text
    comment.updated_by_user_id = actor_id
    comment.updated_at = datetime.now(UTC)
    db.add(comment)
    await db.commit()

    await record_event(
        db, action_type="COMMENT_UPDATED", entity_type="TestOrder", entity_id=order_id, actor_id=actor_id,
        description=f"Comment {index} updated",
    )
    return await require_order(db, order_id)


async def delete_comment(
    db: AsyncSession, *, order: lims_models.TestOrder, index: int, actor_id: Optional[int] = None
) -> lims_models.TestOrder:
    order_id = order.id
    comment = comment_at(order, index)
    comment.deleted_at = datetime.now(UTC)
    comment.deleted_by_user_id = actor_id
    db.add(comment)
    await db.commit()

    await record_event(
        db, action_type="COMMENT_DELETED", entity_type="TestOrder", entity_id=order_id, actor_id=actor_id,
        description=f"Comment {index} deleted",
    )
    return await require_order(db, order_id)


# =============================================================================
# 6. 장비 메시지 삭제
# =============================================================================
async def delete_message(db: AsyncSession, *, message_id: int, actor_id: Optional[int] = None) -> None:
    message = await lims_crud.interchange_message.get(db, message_id)
    if message is None:
        raise NotFoundError(f"Interchange message {message_id} not found.")
    if not message.can_delete:
        raise ValidationError("Cannot delete: result must be synced/backed up first")
    await lims_crud.interchange_message.delete(db, id=message_id)

    await record_event(
        db, action_type="MESSAGE_DELETED", entity_type="InterchangeMessage", entity_id=message_id,
        actor_id=actor_id, description=f"Interchange message {message_id} deleted",
    )


async def cleanup_messages(
    db: AsyncSession, *, days_old: Optional[int] = None, actor_id: Optional[int] = None
) -> Tuple[int, datetime]:
    """반영 완료된 메시지 중 보관 기간이 지난 것을 삭제합니다. (삭제 건수, 기준 시각)을 반환."""
    days_old = settings.RAW_MESSAGE_RETENTION_DAYS if days_old is None else days_old
    cutoff = datetime.now(UTC) - timedelta(days=days_old)
    deleted_count = await lims_crud.interchange_message.delete_synced_older_than(db, cutoff=cutoff)
    await db.commit()

    logger.info("보관 기간(%d일) 경과 메시지 %d건 삭제", days_old, deleted_count)
    await record_event(
        db,
        action_type="MESSAGES_CLEANED_UP",
        entity_type="InterchangeMessage",
        actor_id=actor_id,
        description=f"{deleted_count} synced message(s) older than {days_old} days deleted",
        details={"cutoff": cutoff.isoformat(), "deleted_count": deleted_count},
    )
    return deleted_count, cutoff
