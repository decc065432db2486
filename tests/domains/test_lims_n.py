# tests/domains/test_lims_n.py

"""
'lims' 도메인 API 엔드포인트 통합 테스트입니다.

- 검체 처리(접수/재사용), 오류 응답 본문 형식
- 오더 조회, 결과 입력, 코멘트, 수동/AI 검토
- 장비 메시지 동기화/삭제/정리, 판정 규칙 관리
"""

import json
from typing import List

import pytest
from httpx import AsyncClient
from sqlmodel.ext.asyncio.session import AsyncSession

from labflow.core.exceptions import ExternalServiceError
from labflow.domains.fms import models as fms_models
from labflow.domains.inv import models as inv_models
from labflow.domains.lims import models as lims_models

from tests.conftest import FakeTextGenerator

API = "/api/v1/lims"


# =============================================================================
# 1. 검체 처리
# =============================================================================
@pytest.mark.asyncio
async def test_process_sample_creates_then_reuses(
    tech_client: AsyncClient,
    test_instrument: fms_models.Instrument,
    test_reagents: List[inv_models.ConsumableInstallation],
    cbc_panel: List[lims_models.Parameter],
    test_patient: lims_models.Patient,
):
    payload = {"instrument_id": test_instrument.id, "barcode": "BC-API-1", "patient_id": test_patient.id}

    response = await tech_client.post(f"{API}/samples/process", json=payload)
    assert response.status_code == 201
    body = response.json()
    assert body["created"] is True
    assert body["message_id"] is not None
    assert body["order"]["status"] == "pending"
    assert body["order"]["barcode"] == "BC-API-1"

    again = await tech_client.post(f"{API}/samples/process", json=payload)
    assert again.status_code == 200
    assert again.json()["created"] is False
    assert again.json()["message_id"] is None
    assert again.json()["order"]["id"] == body["order"]["id"]


@pytest.mark.asyncio
async def test_process_sample_error_body_lists_every_problem(
    tech_client: AsyncClient,
    test_instrument: fms_models.Instrument,
    reagent_factory,
):
    """(실패) 시약이 부족하면 400과 함께 문제 항목 전체가 errors로 반환됩니다."""
    await reagent_factory(test_instrument.id, "Diluent", quantity_remaining=0)

    response = await tech_client.post(f"{API}/samples/process", json={"instrument_id": test_instrument.id})
    assert response.status_code == 400
    body = response.json()
    assert body["error_type"] == "validation_error"
    assert body["errors"] == [
        "Lysing: missing",
        "Staining: missing",
        "Clotting: missing",
        "Cleaner: missing",
        "Diluent: insufficient quantity",
    ]
    assert "Diluent" in body["detail"]


@pytest.mark.asyncio
async def test_process_sample_requires_authentication(client: AsyncClient):
    response = await client.post(f"{API}/samples/process", json={"instrument_id": 1})
    assert response.status_code == 401


# =============================================================================
# 2. 오더 조회 / 결과 입력 / 코멘트
# =============================================================================
@pytest.mark.asyncio
async def test_read_orders_and_detail(tech_client: AsyncClient, pending_order: lims_models.TestOrder):
    listing = await tech_client.get(f"{API}/orders", params={"status": "pending"})
    assert listing.status_code == 200
    assert [o["id"] for o in listing.json()] == [pending_order.id]

    empty = await tech_client.get(f"{API}/orders", params={"status": "completed"})
    assert empty.json() == []

    detail = await tech_client.get(f"{API}/orders/{pending_order.id}")
    assert detail.status_code == 200
    assert detail.json()["order_number"] == pending_order.order_number
    assert detail.json()["results"] == []

    missing = await tech_client.get(f"{API}/orders/99999")
    assert missing.status_code == 404
    assert missing.json()["error_type"] == "not_found"


@pytest.mark.asyncio
async def test_add_results_via_api(tech_client: AsyncClient, pending_order: lims_models.TestOrder):
    response = await tech_client.post(
        f"{API}/orders/{pending_order.id}/results",
        json={"values": [{"parameter_code": "WBC", "value": 12000}]},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "running"
    assert body["results"][0]["is_flagged"] is True
    assert body["results"][0]["flag_severity"] == "warning"
    assert body["results"][0]["reference_range"] == "4000-10000"


@pytest.mark.asyncio
async def test_add_results_rejects_unknown_parameter(tech_client: AsyncClient, pending_order: lims_models.TestOrder):
    response = await tech_client.post(
        f"{API}/orders/{pending_order.id}/results",
        json={"values": [{"parameter_code": "XYZ", "value": 1}]},
    )
    assert response.status_code == 400
    assert response.json()["errors"] == ["Parameter XYZ not found"]


@pytest.mark.asyncio
async def test_add_results_requires_parameter_reference(tech_client: AsyncClient, pending_order: lims_models.TestOrder):
    response = await tech_client.post(f"{API}/orders/{pending_order.id}/results", json={"values": [{"value": 1}]})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_cancel_and_fail_via_api(tech_client: AsyncClient, pending_order: lims_models.TestOrder):
    response = await tech_client.post(f"{API}/orders/{pending_order.id}/cancel", json={"reason": "Sample hemolyzed"})
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["failure_reason"] == "Sample hemolyzed"

    again = await tech_client.post(f"{API}/orders/{pending_order.id}/fail", json={})
    assert again.status_code == 400
    assert again.json()["detail"] == "Invalid status transition: cancelled -> failed"


@pytest.mark.asyncio
async def test_comment_lifecycle_via_api(tech_client: AsyncClient, pending_order: lims_models.TestOrder):
    url = f"{API}/orders/{pending_order.id}/comments"

    created = await tech_client.post(url, json={"comment_text": "First"})
    assert created.status_code == 201
    await tech_client.post(url, json={"comment_text": "Second"})

    updated = await tech_client.put(f"{url}/1", json={"comment_text": "Second (edited)"})
    assert updated.status_code == 200
    assert [c["comment_text"] for c in updated.json()["comments"]] == ["First", "Second (edited)"]

    deleted = await tech_client.delete(f"{url}/0")
    assert deleted.status_code == 200
    assert deleted.json()["comments"][0]["deleted_at"] is not None

    out_of_bounds = await tech_client.put(f"{url}/5", json={"comment_text": "nope"})
    assert out_of_bounds.status_code == 404


# =============================================================================
# 3. 검토
# =============================================================================
@pytest.mark.asyncio
async def test_review_rejects_out_of_range_adjustment_via_api(
    tech_client: AsyncClient,
    completed_order: lims_models.TestOrder,
    cbc_panel: List[lims_models.Parameter],
):
    response = await tech_client.post(
        f"{API}/orders/{completed_order.id}/review",
        json={"adjustments": [{"parameter_id": cbc_panel[0].id, "new_value": 20000}]},
    )
    assert response.status_code == 400
    assert response.json()["errors"] == ["WBC: Value 20000 is outside acceptable range: 4000-10000"]

    detail = await tech_client.get(f"{API}/orders/{completed_order.id}")
    assert detail.json()["status"] == "completed"


@pytest.mark.asyncio
async def test_review_via_api(
    tech_client: AsyncClient,
    completed_order: lims_models.TestOrder,
    cbc_panel: List[lims_models.Parameter],
):
    response = await tech_client.post(
        f"{API}/orders/{completed_order.id}/review",
        json={"adjustments": [{"parameter_id": cbc_panel[2].id, "new_value": 260000}], "comment": "OK"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "reviewed"
    assert [c["comment_text"] for c in body["comments"]] == ["OK"]


@pytest.mark.asyncio
async def test_ai_review_via_api(
    tech_client: AsyncClient,
    fake_generator: FakeTextGenerator,
    completed_order: lims_models.TestOrder,
    cbc_panel: List[lims_models.Parameter],
):
    fake_generator.responses = [json.dumps({
        "assessment": "All values normal.",
        "recommendations": [{"parameter_id": cbc_panel[0].id, "reason": "No action", "confidence": "high"}],
        "flagged_issues": [],
        "overall_status": "normal",
    })]

    response = await tech_client.post(f"{API}/orders/{completed_order.id}/ai-review")
    assert response.status_code == 200
    body = response.json()
    assert body["persisted"] is True
    assert body["degraded"] is False
    assert body["assessment"]["overall_status"] == "normal"
    assert body["assessment"]["recommendations"][0]["parameter_name"] == "White Blood Cell Count"
    assert body["order"]["status"] == "ai_reviewed"
    assert body["order"]["comments"][0]["comment_text"].startswith("[AI Review - NORMAL]")


@pytest.mark.asyncio
async def test_ai_review_preview_via_api(
    tech_client: AsyncClient,
    fake_generator: FakeTextGenerator,
    completed_order: lims_models.TestOrder,
):
    fake_generator.responses = ['```json\n{"assessment": "Fine", "overall_status": "normal"}\n```']

    response = await tech_client.post(f"{API}/orders/{completed_order.id}/ai-review/preview")
    assert response.status_code == 200
    assert response.json()["persisted"] is False
    assert response.json()["order"]["status"] == "completed"
    assert response.json()["order"]["comments"] == []


@pytest.mark.asyncio
async def test_ai_review_generator_failure_is_502(
    tech_client: AsyncClient,
    fake_generator: FakeTextGenerator,
    completed_order: lims_models.TestOrder,
):
    fake_generator.error = ExternalServiceError("Text generation service returned HTTP 500")

    response = await tech_client.post(f"{API}/orders/{completed_order.id}/ai-review")
    assert response.status_code == 502
    assert response.json()["error_type"] == "external_service_error"


# =============================================================================
# 4. 장비 메시지
# =============================================================================
async def _process(client: AsyncClient, instrument_id: int, barcode: str) -> dict:
    response = await client.post(f"{API}/samples/process", json={"instrument_id": instrument_id, "barcode": barcode})
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_message_sync_and_delete_via_api(
    tech_client: AsyncClient,
    test_instrument: fms_models.Instrument,
    test_reagents: List[inv_models.ConsumableInstallation],
    cbc_panel: List[lims_models.Parameter],
):
    processed = await _process(tech_client, test_instrument.id, "BC-MSG-1")
    message_id = processed["message_id"]

    listing = await tech_client.get(f"{API}/messages", params={"status": "pending"})
    assert [m["id"] for m in listing.json()] == [message_id]

    blocked = await tech_client.delete(f"{API}/messages/{message_id}")
    assert blocked.status_code == 400
    assert blocked.json()["detail"] == "Cannot delete: result must be synced/backed up first"

    synced = await tech_client.post(f"{API}/messages/{message_id}/sync")
    assert synced.status_code == 200
    body = synced.json()
    assert body["message"]["status"] == "synced"
    assert body["message"]["can_delete"] is True
    assert body["order"]["status"] == "completed"
    assert len(body["order"]["results"]) == 3
    assert body["skipped"] == []

    resync = await tech_client.post(f"{API}/messages/{message_id}/sync")
    assert resync.status_code == 400

    deleted = await tech_client.delete(f"{API}/messages/{message_id}")
    assert deleted.status_code == 204
    assert (await tech_client.get(f"{API}/messages/{message_id}")).status_code == 404


@pytest.mark.asyncio
async def test_message_cleanup_requires_admin(
    authorized_client_factory,
    test_admin_user,
    test_technician,
    db_session: AsyncSession,
):
    async with authorized_client_factory(test_technician) as tech:
        forbidden = await tech.post(f"{API}/messages/cleanup")
        assert forbidden.status_code == 403

    async with authorized_client_factory(test_admin_user) as admin:
        response = await admin.post(f"{API}/messages/cleanup", params={"days_old": 30})
        assert response.status_code == 200
        assert response.json()["deleted_count"] == 0
        assert "cutoff" in response.json()


# =============================================================================
# 5. 분석 항목 / 판정 규칙
# =============================================================================
@pytest.mark.asyncio
async def test_read_panel(tech_client: AsyncClient, cbc_panel: List[lims_models.Parameter]):
    response = await tech_client.get(f"{API}/parameters")
    assert response.status_code == 200
    assert [p["code"] for p in response.json()] == ["WBC", "RBC", "PLT"]


@pytest.mark.asyncio
async def test_flagging_rule_management(
    admin_client: AsyncClient,
    cbc_panel: List[lims_models.Parameter],
):
    wbc = cbc_panel[0]
    created = await admin_client.post(
        f"{API}/flagging-rules",
        json={"parameter_id": wbc.id, "max_value": 30000, "severity": "critical", "age_group": "adult"},
    )
    assert created.status_code == 201
    assert created.json()["severity"] == "critical"

    rules = await admin_client.get(f"{API}/parameters/{wbc.id}/flagging-rules")
    assert [r["id"] for r in rules.json()] == [created.json()["id"]]

    unknown = await admin_client.post(f"{API}/flagging-rules", json={"parameter_id": 999, "min_value": 1})
    assert unknown.status_code == 404

    inverted = await admin_client.post(
        f"{API}/flagging-rules", json={"parameter_id": wbc.id, "min_value": 10, "max_value": 5}
    )
    assert inverted.status_code == 422

    unbounded = await admin_client.post(f"{API}/flagging-rules", json={"parameter_id": wbc.id})
    assert unbounded.status_code == 422


@pytest.mark.asyncio
async def test_flagging_rule_creation_requires_admin(
    tech_client: AsyncClient,
    cbc_panel: List[lims_models.Parameter],
):
    response = await tech_client.post(
        f"{API}/flagging-rules", json={"parameter_id": cbc_panel[0].id, "min_value": 1}
    )
    assert response.status_code == 403
