# tests/conftest.py

import os
from datetime import date, timedelta
from typing import AsyncGenerator, Callable, List, Optional

# 앱 설정이 로드되기 전에 테스트용 환경 변수를 지정합니다.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("APP_ENV", "testing")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from labflow.main import app as main_app
from labflow.core import dependencies as deps
from labflow.core.database import SCHEMAS, get_session

# --- 모델 임포트 (SQLModel.metadata 등록) ---
from labflow.domains.usr import models as usr_models
from labflow.domains.fms import models as fms_models
from labflow.domains.inv import models as inv_models
from labflow.domains.lims import models as lims_models
from labflow.domains.shared import models as shared_models  # noqa: F401
from labflow.domains.lims import schemas as lims_schemas, workflow


TEST_DATABASE_URL = "sqlite+aiosqlite://"
REQUIRED_REAGENTS = ["Diluent", "Lysing", "Staining", "Clotting", "Cleaner"]
NORMAL_PANEL_VALUES = {"WBC": 6500, "RBC": 5.2, "PLT": 250000}


class FakeTextGenerator:
    """AI 검토 테스트용 생성기. 미리 지정한 응답을 순서대로 돌려주고 호출 인자를 기록합니다."""

    def __init__(self, responses: Optional[List[str]] = None):
        self.responses = list(responses or [])
        self.calls: List[dict] = []
        self.error: Optional[Exception] = None

    async def generate(self, prompt: str, system_instruction: str, max_tokens: int, temperature: float) -> str:
        self.calls.append({
            "prompt": prompt,
            "system_instruction": system_instruction,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })
        if self.error is not None:
            raise self.error
        return self.responses.pop(0) if self.responses else "{}"


# --- 데이터베이스 픽스처 ---
@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    테스트마다 새 인메모리 SQLite 데이터베이스를 만듭니다.
    PostgreSQL 스키마(usr, fms, inv, lims, shared)는 ATTACH DATABASE로 흉내 냅니다.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _attach_schemas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        for schema_name in SCHEMAS:
            cursor.execute(f"ATTACH DATABASE ':memory:' AS {schema_name}")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


# --- 작업자(사용자) 픽스처 ---
@pytest_asyncio.fixture(scope="function")
def user_factory(db_session: AsyncSession) -> Callable:
    """역할과 속성을 지정하여 테스트 작업자를 생성하는 팩토리 함수를 반환합니다."""
    async def _create_user(username: str, role: usr_models.UserRole, is_active: bool = True, **kwargs) -> usr_models.User:
        user = usr_models.User(
            username=username,
            email=f"{username}@example.com",
            role=role,
            is_active=is_active,
            **kwargs,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user
    return _create_user


@pytest_asyncio.fixture(scope="function")
async def test_admin_user(user_factory: Callable) -> usr_models.User:
    """관리자(ADMIN) 작업자를 생성합니다."""
    return await user_factory("sysadm", usr_models.UserRole.ADMIN, full_name="Admin Test User")


@pytest_asyncio.fixture(scope="function")
async def test_technician(user_factory: Callable) -> usr_models.User:
    """검사 담당자(LAB_TECHNICIAN)를 생성합니다."""
    return await user_factory("labtech", usr_models.UserRole.LAB_TECHNICIAN, full_name="Lab Technician")


# --- 장비 / 시약 / 분석 항목 / 대상자 픽스처 ---
@pytest_asyncio.fixture(scope="function")
async def test_instrument(db_session: AsyncSession) -> fms_models.Instrument:
    instrument = fms_models.Instrument(code="XN-1000", name="Hematology Analyzer", mode=fms_models.InstrumentMode.READY)
    db_session.add(instrument)
    await db_session.commit()
    await db_session.refresh(instrument)
    return instrument


@pytest_asyncio.fixture(scope="function")
def reagent_factory(db_session: AsyncSession) -> Callable:
    async def _install(
        instrument_id: int,
        reagent_name: str,
        lot_number: Optional[str] = None,
        quantity: float = 100.0,
        quantity_remaining: Optional[float] = None,
        expiration_date: Optional[date] = None,
        status: inv_models.ReagentStatus = inv_models.ReagentStatus.IN_USE,
    ) -> inv_models.ConsumableInstallation:
        installation = inv_models.ConsumableInstallation(
            instrument_id=instrument_id,
            reagent_name=reagent_name,
            lot_number=lot_number or f"{reagent_name.upper()}-LOT-1",
            expiration_date=expiration_date or date.today() + timedelta(days=90),
            quantity=quantity,
            quantity_remaining=quantity if quantity_remaining is None else quantity_remaining,
            status=status,
        )
        db_session.add(installation)
        await db_session.commit()
        await db_session.refresh(installation)
        return installation
    return _install


@pytest_asyncio.fixture(scope="function")
async def test_reagents(
    test_instrument: fms_models.Instrument, reagent_factory: Callable
) -> List[inv_models.ConsumableInstallation]:
    """필수 시약 5종을 모두 장착합니다."""
    return [await reagent_factory(test_instrument.id, name) for name in REQUIRED_REAGENTS]


@pytest_asyncio.fixture(scope="function")
async def cbc_panel(db_session: AsyncSession) -> List[lims_models.Parameter]:
    """WBC(단일 범위), RBC(성별 범위), PLT(단일 범위) 3개 항목 패널."""
    parameters = [
        lims_models.Parameter(
            code="WBC", name="White Blood Cell Count", unit="cells/μL", reagent_name="Lysing", sort_order=1,
            normal_range={"min": 4000, "max": 10000, "text": "4,000-10,000 cells/μL"},
        ),
        lims_models.Parameter(
            code="RBC", name="Red Blood Cell Count", unit="million/μL", reagent_name="Diluent", sort_order=2,
            normal_range={
                "male": {"min": 4.7, "max": 6.1, "text": "Male: 4.7-6.1 million/μL"},
                "female": {"min": 4.2, "max": 5.4, "text": "Female: 4.2-5.4 million/μL"},
            },
        ),
        lims_models.Parameter(
            code="PLT", name="Platelet Count", unit="cells/μL", reagent_name="Diluent", sort_order=3,
            normal_range={"min": 150000, "max": 350000, "text": "150,000-350,000 cells/μL"},
        ),
    ]
    db_session.add_all(parameters)
    await db_session.commit()
    for parameter in parameters:
        await db_session.refresh(parameter)
    return parameters


@pytest_asyncio.fixture(scope="function")
async def test_patient(db_session: AsyncSession) -> lims_models.Patient:
    patient = lims_models.Patient(
        patient_code="PID-0001", full_name="Test Patient",
        gender=lims_models.Gender.MALE, date_of_birth=date(1980, 5, 1),
    )
    db_session.add(patient)
    await db_session.commit()
    await db_session.refresh(patient)
    return patient


@pytest_asyncio.fixture(scope="function")
async def pending_order(
    db_session: AsyncSession,
    test_instrument: fms_models.Instrument,
    test_reagents: List[inv_models.ConsumableInstallation],
    cbc_panel: List[lims_models.Parameter],
    test_patient: lims_models.Patient,
    test_technician: usr_models.User,
) -> lims_models.TestOrder:
    """바코드 BC-1000으로 접수된 pending 오더."""
    order, _ = await workflow.intake(
        db_session,
        instrument_id=test_instrument.id,
        actor_id=test_technician.id,
        barcode="BC-1000",
        patient_id=test_patient.id,
    )
    return order


@pytest_asyncio.fixture(scope="function")
async def completed_order(
    db_session: AsyncSession,
    pending_order: lims_models.TestOrder,
    test_technician: usr_models.User,
) -> lims_models.TestOrder:
    """패널 3개 항목이 모두 정상 범위로 입력된 completed 오더."""
    return await workflow.apply_results(
        db_session,
        order=pending_order,
        values=[
            lims_schemas.ResultValueIn(parameter_code=code, value=value)
            for code, value in NORMAL_PANEL_VALUES.items()
        ],
        actor_id=test_technician.id,
    )


@pytest.fixture(scope="function")
def fake_generator() -> FakeTextGenerator:
    return FakeTextGenerator()


# --- 인증 클라이언트 픽스처 ---
@pytest_asyncio.fixture(scope="function")
def authorized_client_factory(db_session: AsyncSession, fake_generator: FakeTextGenerator) -> Callable:
    """
    특정 작업자로 인증된 AsyncClient를 만드는 팩토리를 반환합니다.
    토큰 검증은 외부 인증 서비스 몫이므로 현재 작업자 의존성을 직접 오버라이드합니다.
    """
    from contextlib import asynccontextmanager

    @asynccontextmanager
    async def _create_client_context(user: usr_models.User) -> AsyncGenerator[AsyncClient, None]:
        async def override_get_session():
            yield db_session

        def override_get_current_user():
            return user

        original_overrides = main_app.dependency_overrides.copy()
        try:
            main_app.dependency_overrides.update({
                get_session: override_get_session,
                deps.get_db_session: override_get_session,
                deps.get_current_active_user: override_get_current_user,
                deps.get_text_generator: lambda: fake_generator,
            })
            if user.role in (usr_models.UserRole.ADMIN, usr_models.UserRole.SUPERUSER):
                main_app.dependency_overrides[deps.get_current_admin_user] = override_get_current_user

            transport = ASGITransport(app=main_app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                yield client
        finally:
            main_app.dependency_overrides.clear()
            main_app.dependency_overrides.update(original_overrides)

    return _create_client_context


@pytest_asyncio.fixture(scope="function")
async def admin_client(authorized_client_factory: Callable, test_admin_user: usr_models.User) -> AsyncGenerator[AsyncClient, None]:
    """관리자로 인증된 클라이언트를 반환합니다."""
    async with authorized_client_factory(test_admin_user) as client:
        yield client


@pytest_asyncio.fixture(scope="function")
async def tech_client(authorized_client_factory: Callable, test_technician: usr_models.User) -> AsyncGenerator[AsyncClient, None]:
    """검사 담당자로 인증된 클라이언트를 반환합니다."""
    async with authorized_client_factory(test_technician) as client:
        yield client


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """인증 없이 세션만 오버라이드한 클라이언트입니다."""
    async def override_get_session():
        yield db_session

    original_overrides = main_app.dependency_overrides.copy()
    main_app.dependency_overrides.update({
        get_session: override_get_session,
        deps.get_db_session: override_get_session,
    })
    try:
        async with AsyncClient(transport=ASGITransport(app=main_app), base_url="http://test") as c:
            yield c
    finally:
        main_app.dependency_overrides.clear()
        main_app.dependency_overrides.update(original_overrides)
