"""Tests for the knowledge-base HTTP endpoints."""
import pytest

from arcana.main import create_app
from arcana.rag.documents import SourceDocument


@pytest.fixture
def app(service):
    return create_app(service, auto_initialize=False)


@pytest.fixture
def client(app):
    return app.test_client()


async def test_status_reports_empty_store(client):
    response = await client.get("/api/knowledge-base/process")
    data = await response.get_json()

    assert response.status_code == 200
    assert data["ready"] is False
    assert data["count"] == 0


async def test_process_builds_from_documents(client, documents_dir, card_documents):
    for name, text in card_documents.items():
        (documents_dir / name).write_text(text, encoding="utf-8")

    response = await client.post("/api/knowledge-base/process")
    data = await response.get_json()

    assert response.status_code == 200
    assert data["success"] is True
    assert data["stats"]["sources_processed"] == 2

    status = await (await client.get("/api/knowledge-base/process")).get_json()
    assert status["ready"] is True


async def test_process_failure_returns_500(service, tmp_path):
    service.documents_dir = tmp_path / "missing"
    client = create_app(service, auto_initialize=False).test_client()

    response = await client.post("/api/knowledge-base/process")
    data = await response.get_json()

    assert response.status_code == 500
    assert data["success"] is False
    assert "missing" in data["error"]


async def test_context_requires_terms(client):
    response = await client.post("/api/knowledge-base/context", json={"cards": []})

    assert response.status_code == 400


async def test_context_is_empty_when_not_ready(client):
    response = await client.post("/api/knowledge-base/context", json={"terms": ["The Fool"]})
    data = await response.get_json()

    assert response.status_code == 200
    assert data == {"context": "", "knowledge": []}


async def test_context_returns_knowledge(client, service):
    await service.build_index([
        SourceDocument("tower.txt", "The Tower signals sudden upheaval."),
    ])

    response = await client.post(
        "/api/knowledge-base/context",
        json={"terms": ["The Tower signals sudden upheaval.", "Completely different words"]},
    )
    data = await response.get_json()

    assert response.status_code == 200
    assert "The Tower signals sudden upheaval." in data["context"]
    tower, other = data["knowledge"]
    assert tower["sources"][0]["source"] == "tower.txt"
    assert tower["sources"][0]["score"] == pytest.approx(1.0)
    assert other["context"] == "No specific knowledge found for Completely different words."
