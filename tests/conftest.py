"""
Test configuration and fixtures for the Diamante CRM test suite.
Provides database setup, authentication, and common test utilities.
"""

import os

os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
import pytest_asyncio
from typing import AsyncGenerator
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from diamante_crm.main import app
from diamante_crm.api.storage import get_storage
from diamante_crm.core.security import hash_password
from diamante_crm.db.base import Base
from diamante_crm.db.session import get_db
from diamante_crm.services.auth import AuthService
from diamante_crm.services.storage import LocalStorage

# Test database URL
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Create test engine
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False
)

# Create test session maker
TestSessionLocal = async_sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=test_engine,
    class_=AsyncSession
)

VALID_CPF = "52998224725"
OTHER_CPF = "11144477735"
VALID_CNPJ = "11222333000181"


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    # Create all tables
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Create session
    async with TestSessionLocal() as session:
        yield session

    # Drop all tables after test
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(str(tmp_path / "storage"))


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, storage: LocalStorage) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database and storage overrides."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def _staff_headers(session: AsyncSession, email: str, password: str) -> dict:
    tokens, _ = await AuthService().authenticate(session, email, password)
    return {"Authorization": f"Bearer {tokens.access_token}"}


@pytest_asyncio.fixture
async def ceo_user(db_session: AsyncSession):
    """Create an agency with its CEO and return its token headers."""
    staff = await AuthService().register(
        session=db_session,
        nome="Ana Diretora",
        email="ceo@diamante.com",
        password="ceo123456",
        agency_nome="Diamante Incorporadora",
    )
    headers = await _staff_headers(db_session, "ceo@diamante.com", "ceo123456")
    return {"staff": staff, "agency_id": staff.agency_id, "user_id": staff.user_id, "headers": headers}


@pytest_asyncio.fixture
async def member_factory(db_session: AsyncSession, ceo_user: dict):
    """Create members with a given role in the CEO's agency."""

    async def create(role: str, email: str | None = None, password: str = "member123456") -> dict:
        email = email or f"{role}@diamante.com"
        staff = await AuthService().create_staff_member(
            db_session,
            agency_id=ceo_user["agency_id"],
            nome=f"Membro {role}",
            email=email,
            password=password,
            role=role,
            created_by=ceo_user["user_id"],
        )
        headers = await _staff_headers(db_session, email, password)
        return {"staff": staff, "user_id": staff.user_id, "headers": headers}

    return create


@pytest_asyncio.fixture
async def other_agency_user(db_session: AsyncSession):
    """CEO of a second, unrelated agency."""
    staff = await AuthService().register(
        session=db_session,
        nome="Bruno Outro",
        email="ceo@outra.com",
        password="outra123456",
        agency_nome="Outra Construtora",
    )
    headers = await _staff_headers(db_session, "ceo@outra.com", "outra123456")
    return {"staff": staff, "agency_id": staff.agency_id, "headers": headers}


@pytest.fixture
def client_payload():
    return {
        "razaoSocial": "Construtora Alfa Ltda",
        "cnpj": "11.222.333/0001-81",
        "endereco": "Rua das Flores, 123 - Centro",
        "valorPago": 150000,
        "recorrencia": "financiamento",
        "responsavel": "Carlos Lima",
        "contatoInterno": "11999990000",
    }


@pytest.fixture
def project_payload():
    return {
        "nome": "Residencial Diamante",
        "cidade": "Campinas",
        "inicioPrevisto": "2026-01-10",
        "entregaPrevista": "2027-12-20",
        "status": "em_obra",
        "progresso": 35,
        "orcamento": 5000000,
        "gasto": 1200000,
    }


class TestDataFactory:
    """Factory class for creating portal test data."""

    @staticmethod
    async def create_portal_client(
        session: AsyncSession,
        cpf: str = VALID_CPF,
        phone: str = "+5511987654321",
        pass6: str = "654321",
        portal_access_enabled: bool = True,
        with_user: bool = True,
    ):
        """Create a portal profile and its auth user (``<cpf>@portal.local``)."""
        from diamante_crm.db.models import AuthUser, Profile

        user = None
        if with_user:
            user = AuthUser(email=f"{cpf}@portal.local", hashed_password=hash_password(pass6), ativo=True)
            session.add(user)
            await session.flush()

        profile = Profile(
            user_id=user.id if user else None,
            cpf=cpf,
            full_name="Maria Cliente",
            phone_e164=phone,
            portal_access_enabled=portal_access_enabled,
        )
        session.add(profile)
        await session.commit()
        return user, profile

    @staticmethod
    async def create_contract(session: AsyncSession, user_id: str, contract_number: str = "CTR-0001"):
        from diamante_crm.db.models import Contract

        contract = Contract(
            contract_number=contract_number,
            user_id=user_id,
            development_id="residencial-diamante",
            development_name="Residencial Diamante",
            unit_id="apto-101",
            unit_label="Apto 101",
        )
        session.add(contract)
        await session.commit()
        return contract

    @staticmethod
    async def create_agent(session: AsyncSession, email: str = "agente@portal.local"):
        from diamante_crm.db.models import Agent, AuthUser

        user = AuthUser(email=email, hashed_password=hash_password("agent123"), ativo=True)
        session.add(user)
        await session.flush()
        session.add(Agent(user_id=user.id, display_name="Agente", is_active=True))
        await session.commit()
        return user


@pytest.fixture
def test_factory():
    """Provide access to test data factory."""
    return TestDataFactory


@pytest.fixture
def bearer_for():
    """Build an Authorization header with an access token for a user."""

    def build(user) -> dict:
        tokens = AuthService().issue_tokens(user)
        return {"Authorization": f"Bearer {tokens.access_token}"}

    return build
