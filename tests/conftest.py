"""
Fixtures compartidas para Pytest.
Configura base de datos de test, clientes HTTP y un catálogo de ejemplo.
"""

from collections.abc import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.lab.catalog import LabCatalog, ParameterDefinition, SampleType, TestDefinition
from app.main import app
from app.models.lab_test import LabParameter, LabTest

# ── Engine de test (SQLite async en memoria) ─────────
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def test_engine():
    """Un engine por test; las tablas se crean y destruyen en cada uno."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Provee una sesión de DB de test."""
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Cliente HTTP de test que usa la DB de test."""

    async def _get_test_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_test_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Catálogo de dominio ──────────────────────────────

@pytest.fixture
def glucose() -> ParameterDefinition:
    return ParameterDefinition(
        name="Glucosa", code="GLU", unit="mg/dL",
        ref_min=70, ref_max=100, critical_min=40, critical_max=400,
    )


@pytest.fixture
def hemoglobin() -> ParameterDefinition:
    return ParameterDefinition(
        name="Hemoglobina", code="HGB", unit="g/dL", sort_order=1,
        ref_min=12, ref_max=16, critical_min=7, critical_max=20,
    )


@pytest.fixture
def leukocytes() -> ParameterDefinition:
    return ParameterDefinition(
        name="Leucocitos", code="WBC", unit="x10^3/uL", sort_order=2,
        ref_min=4.5, ref_max=11,
    )


@pytest.fixture
def glucose_test(glucose: ParameterDefinition) -> TestDefinition:
    return TestDefinition(
        code="BIO-001", name="Glucosa en ayunas", category="Bioquímica",
        price_minor=800, duration_hours=2, parameters=(glucose,),
    )


@pytest.fixture
def cbc_test(hemoglobin: ParameterDefinition, leukocytes: ParameterDefinition) -> TestDefinition:
    return TestDefinition(
        code="HEM-001", name="Hemograma completo", category="Hematología",
        price_minor=2500, duration_hours=4, parameters=(leukocytes, hemoglobin),
    )


@pytest.fixture
def biopsy_test() -> TestDefinition:
    return TestDefinition(
        code="PAT-001", name="Estudio anatomopatológico", category="Patología",
        sample_type=SampleType.TISSUE, price_minor=12000, duration_hours=168,
    )


@pytest.fixture
def catalog(glucose_test, cbc_test, biopsy_test) -> LabCatalog:
    return LabCatalog([glucose_test, cbc_test, biopsy_test])


@pytest_asyncio.fixture
async def seeded_catalog(db_session: AsyncSession, catalog: LabCatalog) -> LabCatalog:
    """Escribe el catálogo de ejemplo en la DB de test."""
    for definition in catalog:
        db_session.add(
            LabTest(
                id=uuid4(),
                code=definition.code,
                name=definition.name,
                category=definition.category,
                sample_type=definition.sample_type,
                price_minor=definition.price_minor,
                duration_hours=definition.duration_hours,
                is_active=True,
                parameters=[
                    LabParameter(
                        id=p.id,
                        name=p.name,
                        code=p.code,
                        unit=p.unit,
                        sort_order=p.sort_order,
                        reference_text=p.reference_text,
                        ref_min=p.ref_min,
                        ref_max=p.ref_max,
                        critical_min=p.critical_min,
                        critical_max=p.critical_max,
                    )
                    for p in definition.parameters
                ],
            )
        )
    await db_session.commit()
    return catalog
