import json
import pytest
import requests
from unittest.mock import MagicMock

API_KEY = "AIza-test-secret-key-123"

@pytest.fixture(scope="function")
def gemini_api_key(monkeypatch):
    """Chave falsa do Gemini disponível no ambiente."""
    monkeypatch.setenv("GEMINI_API_KEY", API_KEY)
    return API_KEY

@pytest.fixture(scope="function")
def no_api_key(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)

@pytest.fixture(scope="function")
def make_response():
    """Fábrica de respostas falsas do Gemini (interface de requests.Response)."""
    def _make(status_code, payload=None, raw_text=None):
        response = MagicMock(spec=requests.Response)
        response.status_code = status_code
        response.ok = 200 <= status_code < 400
        if raw_text is not None:
            response.json.side_effect = json.JSONDecodeError("Expecting value", raw_text, 0)
        else:
            response.json.return_value = payload
        return response
    return _make

@pytest.fixture(scope="function")
def http_session(make_response):
    """Transporte falso com a interface de requests.Session (nenhuma chamada de rede real)."""
    session = MagicMock(spec=requests.Session)
    session.post.return_value = make_response(200, {"candidates": []})
    return session
