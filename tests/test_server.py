import pytest
from fastapi.testclient import TestClient
from unittest.mock import patch, AsyncMock
import server # Import to make sure app is loaded
from server import app
from epubsmith.models import EpubBuildError

client = TestClient(app)

PAYLOAD = {
    "title": "Sample",
    "author": "A. Writer",
    "cover": "https://covers.example.com/cover.jpg",
    "chapters": [
        {"title": "Intro", "content": "<p>Hello</p>"},
        {"title": "", "content": "<p>World</p>"},
    ],
}

def test_ping():
    response = client.get("/ping")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}

@patch("server.EpubPackager.build_archive", new_callable=AsyncMock)
def test_build_endpoint(mock_build):
    mock_build.return_value = (b"PK\x03\x04fake", "sample-a-writer.epub")

    response = client.post("/build", json=PAYLOAD)

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/epub+zip"
    assert 'filename="sample-a-writer.epub"' in response.headers["content-disposition"]
    assert response.content == b"PK\x03\x04fake"

    args, kwargs = mock_build.call_args
    book = args[0]
    assert book.title == "Sample"
    assert book.cover_url == "https://covers.example.com/cover.jpg"
    assert [c.title for c in book.chapters] == ["Intro", ""]
    assert book.chapters[1].html_content == "<p>World</p>"
    assert "config" in kwargs

@patch("server.EpubPackager.build_archive", new_callable=AsyncMock)
def test_build_failure_is_500(mock_build):
    mock_build.side_effect = EpubBuildError("Duplicate manifest ids: chapter-000")
    response = client.post("/build", json=PAYLOAD)
    assert response.status_code == 500
    assert "Duplicate manifest ids" in response.json()["detail"]

def test_build_requires_chapters():
    response = client.post("/build", json={"title": "Empty", "chapters": []})
    assert response.status_code == 422
