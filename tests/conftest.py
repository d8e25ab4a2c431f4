import base64
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator
import uuid

import pytest
import pytest_asyncio
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from app.main import app
from app.db.base import Base
from app.api.deps import get_db, get_current_db_user
from app.api.v1.employee_cards import get_issuance_service, get_qr_encoder
from app.models.enums import UserRole
from app.models.user import User
from app.services.issuance_service import IssuanceService
from app.services.pass_descriptor_builder import EmployeeRecord, IssuerConfig, WorkplaceLocation
from app.services.pass_signer import PassSigner
from app.services.qr_encoder import QREncoder
from app.services.wallet_pass_service import WalletPassService


# Use SQLite for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_DOWNLOAD_SECRET = "test-download-secret"
TEST_CERT_PASSWORD = "test-password"


def _self_signed(common_name: str):
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=365))
        .sign(key, hashes.SHA256())
    )
    return key, cert


@pytest.fixture(scope="session")
def apple_signing_material() -> dict:
    """Base64 PKCS#12 pass certificate plus a base64 PEM WWDR certificate."""
    key, cert = _self_signed("Pass Type ID: pass.com.example.employee")
    _, wwdr = _self_signed("Apple Worldwide Developer Relations Test CA")
    p12 = pkcs12.serialize_key_and_certificates(
        name=b"badge",
        key=key,
        cert=cert,
        cas=None,
        encryption_algorithm=serialization.BestAvailableEncryption(TEST_CERT_PASSWORD.encode()),
    )
    return {
        "cert_base64": base64.b64encode(p12).decode(),
        "cert_password": TEST_CERT_PASSWORD,
        "wwdr_cert_base64": base64.b64encode(wwdr.public_bytes(serialization.Encoding.PEM)).decode(),
        "certificate": cert,
    }


@pytest.fixture(scope="session")
def service_account() -> dict:
    """A Google service account JSON with a freshly generated RSA key."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    return {
        "type": "service_account",
        "client_email": "wallet-issuer@example-project.iam.gserviceaccount.com",
        "private_key_id": "test-key-1",
        "private_key": pem,
        "public_key": key.public_key(),
    }


@pytest.fixture
def signer(apple_signing_material, service_account) -> PassSigner:
    return PassSigner(
        cert_base64=apple_signing_material["cert_base64"],
        cert_password=apple_signing_material["cert_password"],
        wwdr_cert_base64=apple_signing_material["wwdr_cert_base64"],
        service_account=service_account,
    )


@pytest.fixture
def issuer(service_account) -> IssuerConfig:
    return IssuerConfig(
        pass_type_identifier="pass.com.example.employee",
        team_identifier="ABCDE12345",
        organization_name="Example Corp",
        google_issuer_id="3388000000012345678",
        google_service_account_email=service_account["client_email"],
        google_key_id=service_account["private_key_id"],
        default_location=WorkplaceLocation(latitude=37.5, longitude=127.0),
    )


@pytest.fixture
def packager(signer) -> WalletPassService:
    return WalletPassService(signer)


@pytest.fixture
def encoder() -> QREncoder:
    return QREncoder(
        inline_max_bytes=300,
        download_secret=TEST_DOWNLOAD_SECRET,
        download_ttl_seconds=900,
        public_base_url="https://badges.example.com",
        api_prefix="/api/v1",
    )


@pytest.fixture
def employee_record() -> EmployeeRecord:
    return EmployeeRecord(
        name="Kim Minjun",
        department="Engineering",
        workplace="Main Office",
    )


@pytest.fixture
def issued_at() -> datetime:
    return datetime(2024, 3, 4, 9, 30, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session_maker = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with async_session_maker() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def test_user(test_session: AsyncSession) -> User:
    """Create a test user."""
    user = User(
        id=str(uuid.uuid4()),
        firebase_uid="test_firebase_uid",
        email="test@example.com",
        display_name="Test User",
        role=UserRole.EMPLOYEE.value,
        is_active=True,
    )
    test_session.add(user)
    await test_session.commit()
    await test_session.refresh(user)
    return user


@pytest_asyncio.fixture(scope="function")
async def admin_user(test_session: AsyncSession) -> User:
    """Create an administrator."""
    user = User(
        id=str(uuid.uuid4()),
        firebase_uid="admin_firebase_uid",
        email="admin@example.com",
        display_name="Admin User",
        role=UserRole.ADMIN.value,
        is_active=True,
    )
    test_session.add(user)
    await test_session.commit()
    await test_session.refresh(user)
    return user


@pytest.fixture
def issuance_service(test_session, signer, issuer, encoder) -> IssuanceService:
    return IssuanceService(test_session, signer=signer, issuer=issuer, encoder=encoder)


def _client_as(user, test_session, issuance_service, encoder):
    async def override_get_db():
        yield test_session

    async def override_get_current_db_user():
        return user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_db_user] = override_get_current_db_user
    app.dependency_overrides[get_issuance_service] = lambda: issuance_service
    app.dependency_overrides[get_qr_encoder] = lambda: encoder

    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest_asyncio.fixture(scope="function")
async def client(
    test_session: AsyncSession,
    test_user: User,
    issuance_service: IssuanceService,
    encoder: QREncoder,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client authenticated as an employee."""
    async with _client_as(test_user, test_session, issuance_service, encoder) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def admin_client(
    test_session: AsyncSession,
    admin_user: User,
    issuance_service: IssuanceService,
    encoder: QREncoder,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client authenticated as an administrator."""
    async with _client_as(admin_user, test_session, issuance_service, encoder) as ac:
        yield ac

    app.dependency_overrides.clear()
