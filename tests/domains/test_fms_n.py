# tests/domains/test_fms_n.py

"""
'fms' 도메인 (장비 디렉터리) API 엔드포인트 통합 테스트입니다.
"""

import pytest
from httpx import AsyncClient
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from labflow.domains.fms import models as fms_models
from labflow.domains.shared import models as shared_models

API = "/api/v1/fms"


@pytest.mark.asyncio
async def test_create_instrument(admin_client: AsyncClient):
    response = await admin_client.post(
        f"{API}/instruments",
        json={"code": "BC-6800", "name": "Auto Hematology Analyzer", "serial_number": "SN-001"},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["code"] == "BC-6800"
    assert body["mode"] == "ready"

    duplicate = await admin_client.post(f"{API}/instruments", json={"code": "BC-6800", "name": "Other"})
    assert duplicate.status_code == 400
    assert "already exists" in duplicate.json()["detail"]


@pytest.mark.asyncio
async def test_create_instrument_requires_admin(tech_client: AsyncClient):
    response = await tech_client.post(f"{API}/instruments", json={"code": "X-1", "name": "X"})
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_read_instruments_filtered_by_mode(
    tech_client: AsyncClient,
    db_session: AsyncSession,
    test_instrument: fms_models.Instrument,
):
    db_session.add(fms_models.Instrument(code="XN-2000", name="Backup", mode=fms_models.InstrumentMode.MAINTENANCE))
    await db_session.commit()

    everything = await tech_client.get(f"{API}/instruments")
    assert [i["code"] for i in everything.json()] == ["XN-1000", "XN-2000"]

    ready = await tech_client.get(f"{API}/instruments", params={"mode": "ready"})
    assert [i["code"] for i in ready.json()] == ["XN-1000"]


@pytest.mark.asyncio
async def test_read_instrument(tech_client: AsyncClient, test_instrument: fms_models.Instrument):
    response = await tech_client.get(f"{API}/instruments/{test_instrument.id}")
    assert response.status_code == 200
    assert response.json()["name"] == "Hematology Analyzer"

    missing = await tech_client.get(f"{API}/instruments/9999")
    assert missing.status_code == 404
    assert missing.json()["error_type"] == "not_found"


@pytest.mark.asyncio
async def test_update_instrument_mode_records_event(
    admin_client: AsyncClient,
    db_session: AsyncSession,
    test_instrument: fms_models.Instrument,
):
    response = await admin_client.put(
        f"{API}/instruments/{test_instrument.id}/mode", json={"mode": "maintenance"}
    )
    assert response.status_code == 200
    assert response.json()["mode"] == "maintenance"

    events = (await db_session.execute(
        select(shared_models.EventLog).where(shared_models.EventLog.action_type == "INSTRUMENT_MODE_CHANGED")
    )).scalars().all()
    assert len(events) == 1
    assert events[0].details == {"previous": "ready", "mode": "maintenance"}

    invalid = await admin_client.put(f"{API}/instruments/{test_instrument.id}/mode", json={"mode": "broken"})
    assert invalid.status_code == 422
