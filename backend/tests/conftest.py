"""
Test Configuration — Fixtures for async DB, in-memory blob store, test client, and mock data.

Each test gets its own in-memory SQLite database (StaticPool keeps the one
connection alive) with foreign keys switched on, so ON DELETE CASCADE
behaves as it does on PostgreSQL.
"""

import base64
import struct
from collections.abc import Sequence

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from api.deps import get_app_settings, get_current_user, get_db
from api.main import app
from core.config import Settings
from db.session import Base
from media.blob_store import BlobStore, BlobStoreError, StoredBlob, get_blob_store

TEST_DATABASE_URL = "sqlite+aiosqlite://"

MANAGED_BLOB_HOST = "store-test.public.blob.vercel-storage.com"
MANUFACTURER = "Acme Pharma"
OTHER_MANUFACTURER = "Beta Labs"


class FakeBlobStore(BlobStore):
    """In-memory BlobStore that records every put and delete."""

    def __init__(self):
        self.blobs: dict[str, bytes] = {}
        self.puts: list[tuple[str, str]] = []
        self.deleted: list[str] = []
        self.fail_put_paths: set[str] = set()
        self.fail_delete_urls: set[str] = set()

    async def put(self, path: str, data: bytes, content_type: str) -> StoredBlob:
        if any(fragment in path for fragment in self.fail_put_paths):
            raise BlobStoreError(f"Upload failed for {path}")
        url = f"https://{MANAGED_BLOB_HOST}/{path}-{len(self.puts):04d}"
        self.puts.append((path, content_type))
        self.blobs[url] = data
        return StoredBlob(url=url, pathname=path, content_type=content_type)

    async def delete(self, urls: str | Sequence[str]) -> None:
        for url in [urls] if isinstance(urls, str) else urls:
            if url in self.fail_delete_urls:
                raise BlobStoreError(f"Delete failed for {url}")
            self.deleted.append(url)
            self.blobs.pop(url, None)


def png_bytes(width: int, height: int) -> bytes:
    """Minimal PNG header (signature + IHDR) for the given size."""
    ihdr = struct.pack(">II", width, height) + b"\x08\x06\x00\x00\x00"
    return b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + ihdr + b"\x00\x00\x00\x00"


def jpeg_bytes(width: int, height: int) -> bytes:
    """SOI, one APP0 segment, then a baseline SOF0 frame header."""
    app0 = b"\xff\xe0" + struct.pack(">H", 16) + b"JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
    sof0 = b"\xff\xc0" + struct.pack(">HBHHB", 17, 8, height, width, 3) + b"\x01\x22\x00\x02\x11\x01\x03\x11\x01"
    return b"\xff\xd8" + app0 + sof0 + b"\xff\xd9"


def data_url(mime_type: str, payload: bytes) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(payload).decode('ascii')}"


def make_sheet_payload(sheet_id: str = "sheet-1", products: list[dict] | None = None, **fields) -> dict:
    """camelCase sheet payload as the entry form sends it."""
    if products is None:
        products = [make_product_payload("prod-1")]
    sheet = {
        "id": sheet_id,
        "creatorName": "Test Staff",
        "manufacturerName": MANUFACTURER,
        "email": "staff@acme.example",
        "phoneNumber": "03-0000-0000",
        "title": "Spring shelf",
        "notes": "",
        "status": "draft",
        "products": products,
    }
    sheet.update(fields)
    return sheet


def make_product_payload(product_id: str, **fields) -> dict:
    product = {
        "id": product_id,
        "shelfName": "Cold & Flu",
        "manufacturerName": MANUFACTURER,
        "janCode": "4900000000001",
        "productName": f"Product {product_id}",
        "riskClassification": "Class 2",
        "specificIngredients": [],
        "width": 10,
        "height": 20,
        "depth": 5,
        "facingCount": 2,
        "arrivalDate": "2026-11-01",
        "hasPromoMaterial": "no",
    }
    product.update(fields)
    return product


@pytest.fixture
async def test_engine():
    """Fresh in-memory database per test with all tables created."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db(test_engine):
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def test_settings():
    return Settings(media_allowed_hosts="cdn.partner.example")


@pytest.fixture
def admin_user():
    return {
        "sub": "user-admin",
        "email": "admin@pharmapop.example",
        "display_name": "Admin User",
        "phone_number": "",
        "manufacturer_name": "",
        "role": "ADMIN",
    }


@pytest.fixture
def staff_user():
    return {
        "sub": "user-staff",
        "email": "staff@acme.example",
        "display_name": "Acme Staff",
        "phone_number": "03-1111-1111",
        "manufacturer_name": MANUFACTURER,
        "role": "STAFF",
    }


@pytest.fixture
def other_staff_user():
    return {
        "sub": "user-beta",
        "email": "staff@beta.example",
        "display_name": "Beta Staff",
        "phone_number": "",
        "manufacturer_name": OTHER_MANUFACTURER,
        "role": "STAFF",
    }


@pytest.fixture
def mock_user(staff_user):
    """Authenticated user for the test client; tests switch it with act_as."""
    return dict(staff_user)


@pytest.fixture
def act_as(mock_user):
    """Switch the user the test client is authenticated as."""

    def _act_as(user: dict) -> None:
        mock_user.clear()
        mock_user.update(user)

    return _act_as


@pytest.fixture
async def client(test_db, blob_store, test_settings, mock_user):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: mock_user
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    app.dependency_overrides[get_app_settings] = lambda: test_settings

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
