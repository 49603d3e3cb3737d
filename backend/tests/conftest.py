import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from entryflow.config import Settings
from entryflow.models.base import Base
# Import all models so they register with Base.metadata for create_all
import entryflow.models  # noqa: F401
from entryflow.models.document import Document, DocumentType, OcrStatus
from entryflow.models.entry import Entry, EntryStatus
from entryflow.reconciliation_engine.service import FieldStore


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def test_engine(tmp_path):
    # Fresh SQLite file per test (no Postgres dependency needed)
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db", echo=False)

    # pysqlite defers BEGIN on its own; take it over so SAVEPOINTs nest properly
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine):
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        anthropic_api_key="",
        database_url="sqlite+aiosqlite:///test.db",
        upload_dir=str(tmp_path / "uploads"),
        broker_edit_policy="open",
    )


@pytest.fixture
def field_store(settings) -> FieldStore:
    return FieldStore(settings)


@pytest.fixture
def make_entry(db_session):
    """Factory: an entry holding one document per requested type."""

    async def _make(
        *doc_types: DocumentType,
        status: EntryStatus = EntryStatus.PENDING,
        created_by: str | None = "broker-1",
    ) -> tuple[Entry, dict[DocumentType, Document]]:
        entry = Entry(id=uuid.uuid4(), status=status, created_by=created_by)
        db_session.add(entry)
        await db_session.flush()

        documents = {}
        for doc_type in doc_types:
            document = Document(
                id=uuid.uuid4(),
                entry_id=entry.id,
                document_type=doc_type,
                content_ref=f"{entry.id}/{doc_type.value.lower()}.pdf",
                mime_type="application/pdf",
                original_filename=f"{doc_type.value.lower()}.pdf",
                file_size=1024,
                ocr_status=OcrStatus.PENDING,
            )
            db_session.add(document)
            documents[doc_type] = document
        await db_session.flush()
        return entry, documents

    return _make


@pytest.fixture
async def client(db_session, tmp_path):
    from entryflow.config import settings
    from entryflow.database import get_db
    from entryflow.main import app

    # Override upload dir to temp
    original_upload_dir = settings.upload_dir
    settings.upload_dir = str(tmp_path)

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    settings.upload_dir = original_upload_dir


@pytest.fixture
def sample_pdf_bytes() -> bytes:
    """Minimal PDF-like content; not parseable, so only the magic bytes matter."""
    return b"%PDF-1.4 fake test content\nInvoice #12345\nTotal: $1,500.00"
