"""Test fixtures: in-memory database, temp upload dir, fake vision API."""

import json
import os

# Must be set before config/db are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from pathlib import Path
from typing import Any, Dict, List

import pytest
from starlette.testclient import TestClient

import config
from db import Base, SessionLocal, engine
from main import app
from budgetly.deps import get_orchestrator
from budgetly.services.categories import seed_categories
from budgetly.services.extraction import ExtractionOrchestrator

PDF_BYTES = b"%PDF-1.4\n1 0 obj << /Type /Catalog >> endobj\ntrailer\n%%EOF\n"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 24

API_KEY = "sk-test-123"

SAMPLE_ANSWER = json.dumps(
    {
        "transactions": [
            {"date": "2024-03-02", "description": "SUPERMERCADO BOM PRECO", "amount": -152.37, "category": "groceries"},
            {"date": "05/03/2024", "description": "UBER *TRIP", "amount": "-23,90", "category": "Transport"},
            {"date": "2024-03-10", "description": "PAGAMENTO RECEBIDO", "amount": 1500, "category": None},
        ]
    }
)


class FakeVisionClient:
    """
    Scripted stand-in for OpenAIVisionClient. Each call pops the next item:
    a string is returned, an exception is raised.
    """

    def __init__(self, responses=None):
        self.responses: List[Any] = list(responses or [])
        self.calls: List[Dict[str, Any]] = []

    def script(self, *responses) -> None:
        self.responses.extend(responses)

    def extract(self, content, mime_type, filename, api_key, allowed_categories=()):
        self.calls.append(
            {
                "content": content,
                "mime_type": mime_type,
                "filename": filename,
                "api_key": api_key,
                "allowed_categories": list(allowed_categories),
            }
        )
        if not self.responses:
            raise AssertionError("FakeVisionClient called more often than scripted")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture(autouse=True)
def database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_categories(db)
    finally:
        db.close()
    yield


@pytest.fixture(autouse=True)
def upload_dir(tmp_path: Path, monkeypatch) -> Path:
    path = tmp_path / "uploads"
    monkeypatch.setattr(config, "UPLOAD_DIR", str(path))
    return path


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def fake_vision() -> FakeVisionClient:
    return FakeVisionClient()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def client(fake_vision: FakeVisionClient, sleeps: List[float]):
    app.dependency_overrides[get_orchestrator] = lambda: ExtractionOrchestrator(
        fake_vision,
        max_attempts=3,
        backoff_seconds=1.0,
        max_backoff_seconds=8.0,
        sleep=sleeps.append,
    )
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def upload_pdf(client: TestClient, filename: str = "fatura-marco.pdf") -> Dict[str, Any]:
    resp = client.post(
        "/invoices/upload",
        files={"file": (filename, PDF_BYTES, "application/pdf")},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def process(client: TestClient, invoice_id: str, api_key: str = API_KEY):
    headers = {config.API_KEY_HEADER: api_key} if api_key else {}
    return client.post(f"/invoices/{invoice_id}/process", headers=headers)


@pytest.fixture
def processed_invoice(client: TestClient, fake_vision: FakeVisionClient) -> Dict[str, Any]:
    """An uploaded invoice processed with SAMPLE_ANSWER (three entries)."""
    invoice = upload_pdf(client)
    fake_vision.script(SAMPLE_ANSWER)
    resp = process(client, invoice["id"])
    assert resp.status_code == 200, resp.text
    return resp.json()
