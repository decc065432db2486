# tests/domains/test_inv_n.py

"""
'inv' 도메인 API 엔드포인트 및 백그라운드 작업 통합 테스트입니다.

- 시약 장착 (관리자 전용), 탈거, 장비별 목록
- 장비별 시약 게이트 보고서
- 유효기간 경과 시약 만료 작업
"""

from datetime import date, timedelta
from typing import Callable, List

import pytest
from httpx import AsyncClient
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from labflow.domains.fms import models as fms_models
from labflow.domains.inv import crud as inv_crud
from labflow.domains.inv import models as inv_models
from labflow.domains.inv import tasks as inv_tasks
from labflow.domains.shared import models as shared_models

API = "/api/v1/inv"


def _install_payload(instrument_id: int, **overrides) -> dict:
    payload = {
        "instrument_id": instrument_id,
        "reagent_name": "Diluent",
        "lot_number": "DIL-2026-01",
        "expiration_date": (date.today() + timedelta(days=180)).isoformat(),
        "quantity": 500,
    }
    payload.update(overrides)
    return payload


# =============================================================================
# 1. 시약 장착 / 탈거
# =============================================================================
@pytest.mark.asyncio
async def test_install_consumable_as_admin(
    admin_client: AsyncClient,
    db_session: AsyncSession,
    test_instrument: fms_models.Instrument,
    test_admin_user,
):
    response = await admin_client.post(f"{API}/consumables", json=_install_payload(test_instrument.id))
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "in_use"
    assert body["quantity_remaining"] == 500
    assert body["installed_by_user_id"] == test_admin_user.id

    events = (await db_session.execute(
        select(shared_models.EventLog).where(shared_models.EventLog.action_type == "CONSUMABLE_INSTALLED")
    )).scalars().all()
    assert len(events) == 1


@pytest.mark.asyncio
async def test_install_consumable_validation(admin_client: AsyncClient, test_instrument: fms_models.Instrument):
    too_much = await admin_client.post(
        f"{API}/consumables", json=_install_payload(test_instrument.id, quantity=10, quantity_remaining=11)
    )
    assert too_much.status_code == 422

    unknown = await admin_client.post(f"{API}/consumables", json=_install_payload(999))
    assert unknown.status_code == 404


@pytest.mark.asyncio
async def test_install_consumable_requires_admin(tech_client: AsyncClient, test_instrument: fms_models.Instrument):
    response = await tech_client.post(f"{API}/consumables", json=_install_payload(test_instrument.id))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_remove_consumable(
    tech_client: AsyncClient,
    test_instrument: fms_models.Instrument,
    reagent_factory: Callable,
):
    lot = await reagent_factory(test_instrument.id, "Diluent")

    response = await tech_client.post(f"{API}/consumables/{lot.id}/remove")
    assert response.status_code == 200
    assert response.json()["status"] == "not_in_use"
    assert response.json()["removed_at"] is not None

    missing = await tech_client.post(f"{API}/consumables/9999/remove")
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_expired_consumable_cannot_be_removed(
    tech_client: AsyncClient,
    test_instrument: fms_models.Instrument,
    reagent_factory: Callable,
):
    lot = await reagent_factory(test_instrument.id, "Diluent", status=inv_models.ReagentStatus.EXPIRED)
    response = await tech_client.post(f"{API}/consumables/{lot.id}/remove")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_list_instrument_consumables(
    tech_client: AsyncClient,
    test_instrument: fms_models.Instrument,
    test_reagents: List[inv_models.ConsumableInstallation],
    reagent_factory: Callable,
):
    await reagent_factory(test_instrument.id, "Diluent", lot_number="DIL-OLD", status=inv_models.ReagentStatus.NOT_IN_USE)

    everything = await tech_client.get(f"{API}/instruments/{test_instrument.id}/consumables")
    assert len(everything.json()) == 6

    in_use = await tech_client.get(f"{API}/instruments/{test_instrument.id}/consumables", params={"in_use_only": True})
    assert [c["reagent_name"] for c in in_use.json()] == ["Diluent", "Lysing", "Staining", "Clotting", "Cleaner"]


# =============================================================================
# 2. 시약 게이트
# =============================================================================
@pytest.mark.asyncio
async def test_reagent_gate_endpoint(
    tech_client: AsyncClient,
    test_instrument: fms_models.Instrument,
    reagent_factory: Callable,
):
    await reagent_factory(test_instrument.id, "Diluent", quantity_remaining=0)
    await reagent_factory(test_instrument.id, "Lysing")

    response = await tech_client.get(f"{API}/instruments/{test_instrument.id}/reagent-gate")
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is False
    assert body["missing"] == ["Staining", "Clotting", "Cleaner"]
    assert body["insufficient"] == ["Diluent"]


@pytest.mark.asyncio
async def test_reagent_gate_ok(
    tech_client: AsyncClient,
    test_instrument: fms_models.Instrument,
    test_reagents: List[inv_models.ConsumableInstallation],
):
    response = await tech_client.get(f"{API}/instruments/{test_instrument.id}/reagent-gate")
    assert response.json()["ok"] is True
    assert response.json()["message"] == ""


# =============================================================================
# 3. 잔량 차감 / 만료 작업
# =============================================================================
@pytest.mark.asyncio
async def test_try_consume_is_conditional(
    db_session: AsyncSession,
    test_instrument: fms_models.Instrument,
    reagent_factory: Callable,
):
    lot = await reagent_factory(test_instrument.id, "Lysing", quantity=2)

    assert await inv_crud.consumable_installation.try_consume(db_session, installation_id=lot.id, quantity=1.5) is True
    assert await inv_crud.consumable_installation.try_consume(db_session, installation_id=lot.id, quantity=1) is False
    await db_session.commit()
    await db_session.refresh(lot)
    assert lot.quantity_remaining == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_expire_consumables_task(
    db_session: AsyncSession,
    test_instrument: fms_models.Instrument,
    reagent_factory: Callable,
):
    overdue = await reagent_factory(test_instrument.id, "Diluent", expiration_date=date.today() - timedelta(days=1))
    current = await reagent_factory(test_instrument.id, "Lysing")
    removed = await reagent_factory(
        test_instrument.id, "Staining",
        expiration_date=date.today() - timedelta(days=5),
        status=inv_models.ReagentStatus.NOT_IN_USE,
    )

    result = await inv_tasks.expire_consumables({"db": db_session})
    assert result == {"status": "ok", "expired_count": 1}

    for lot in (overdue, current, removed):
        await db_session.refresh(lot)
    assert overdue.status == inv_models.ReagentStatus.EXPIRED
    assert current.status == inv_models.ReagentStatus.IN_USE
    assert removed.status == inv_models.ReagentStatus.NOT_IN_USE
