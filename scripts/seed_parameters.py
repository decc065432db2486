# flake8: noqa
# scripts/seed_parameters.py

import asyncio
from datetime import date, timedelta

import typer
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from labflow.core.config import settings
from labflow.core.database import create_db_and_tables, get_async_session_context
from labflow.domains.fms import models as fms_models
from labflow.domains.inv import models as inv_models
from labflow.domains.lims import models as lims_models

cli = typer.Typer()

# 표준 혈액 검사(CBC) 8개 항목. 계산 항목(MCH, MCHC)은 시약을 소모하지 않습니다.
CBC_PARAMETERS = [
    {
        "code": "WBC", "name": "White Blood Cell Count", "unit": "cells/μL", "reagent_name": "Lysing",
        "normal_range": {"min": 4000, "max": 10000, "text": "4,000-10,000 cells/μL"},
    },
    {
        "code": "RBC", "name": "Red Blood Cell Count", "unit": "million/μL", "reagent_name": "Diluent",
        "normal_range": {
            "male": {"min": 4.7, "max": 6.1, "text": "Male: 4.7-6.1 million/μL"},
            "female": {"min": 4.2, "max": 5.4, "text": "Female: 4.2-5.4 million/μL"},
        },
    },
    {
        "code": "HGB", "name": "Hemoglobin", "unit": "g/dL", "reagent_name": "Lysing",
        "normal_range": {
            "male": {"min": 14, "max": 18, "text": "Male: 14-18 g/dL"},
            "female": {"min": 12, "max": 16, "text": "Female: 12-16 g/dL"},
        },
    },
    {
        "code": "HCT", "name": "Hematocrit", "unit": "%", "reagent_name": "Diluent",
        "normal_range": {
            "male": {"min": 42, "max": 52, "text": "Male: 42-52%"},
            "female": {"min": 37, "max": 47, "text": "Female: 37-47%"},
        },
    },
    {
        "code": "PLT", "name": "Platelet Count", "unit": "cells/μL", "reagent_name": "Diluent",
        "normal_range": {"min": 150000, "max": 350000, "text": "150,000-350,000 cells/μL"},
    },
    {
        "code": "MCV", "name": "Mean Corpuscular Volume", "unit": "fL", "reagent_name": "Diluent",
        "normal_range": {"min": 80, "max": 100, "text": "80-100 fL"},
    },
    {
        "code": "MCH", "name": "Mean Corpuscular Haemoglobin", "unit": "pg", "reagent_name": None,
        "normal_range": {"min": 27, "max": 33, "text": "27-33 pg"},
    },
    {
        "code": "MCHC", "name": "Mean Corpuscular Haemoglobin Concentration", "unit": "g/dL", "reagent_name": None,
        "normal_range": {"min": 32, "max": 36, "text": "32-36 g/dL"},
    },
]


async def seed_parameters(db: AsyncSession) -> int:
    created = 0
    for sort_order, data in enumerate(CBC_PARAMETERS, start=1):
        result = await db.execute(select(lims_models.Parameter).where(lims_models.Parameter.code == data["code"]))
        if result.scalars().first():
            print(f"건너뜀: 이미 존재하는 분석 항목입니다: {data['code']}")
            continue
        db.add(lims_models.Parameter(**data, sort_order=sort_order, is_active=True))
        created += 1
    await db.flush()
    return created


async def seed_demo_instrument(db: AsyncSession, code: str, quantity: float) -> None:
    """데모용 장비 1대와 필수 시약 전체를 장착합니다."""
    result = await db.execute(select(fms_models.Instrument).where(fms_models.Instrument.code == code))
    instrument = result.scalars().first()
    if instrument is None:
        instrument = fms_models.Instrument(code=code, name=f"Hematology Analyzer {code}", mode=fms_models.InstrumentMode.READY)
        db.add(instrument)
        await db.flush()
        print(f"데모 장비 등록: {code} (id={instrument.id})")

    expiration = date.today() + timedelta(days=180)
    for index, reagent_name in enumerate(settings.REQUIRED_REAGENT_TYPES, start=1):
        db.add(inv_models.ConsumableInstallation(
            instrument_id=instrument.id,
            reagent_name=reagent_name,
            lot_number=f"{reagent_name[:3].upper()}-DEMO-{index:03d}",
            expiration_date=expiration,
            quantity=quantity,
            quantity_remaining=quantity,
            status=inv_models.ReagentStatus.IN_USE,
        ))
    await db.flush()
    print(f"필수 시약 {len(settings.REQUIRED_REAGENT_TYPES)}종 장착 완료 (각 {quantity})")


@cli.command()
def main(
    create_tables: bool = typer.Option(False, '--create-tables', help="스키마와 테이블을 먼저 생성합니다 (개발용)."),
    demo_instrument: str = typer.Option(None, '--demo-instrument', help="데모 장비 코드. 지정하면 장비와 필수 시약을 함께 등록합니다."),
    reagent_quantity: float = typer.Option(500.0, '--reagent-quantity', help="데모 시약 장착 수량입니다."),
):
    """
    표준 CBC 분석 항목을 등록합니다.
    """
    async def run_seed():
        if create_tables:
            await create_db_and_tables()
        async with get_async_session_context() as db:
            created = await seed_parameters(db)
            print(f"분석 항목 {created}건 등록 완료.")
            if demo_instrument:
                await seed_demo_instrument(db, demo_instrument, reagent_quantity)

    asyncio.run(run_seed())


if __name__ == "__main__":
    cli()
