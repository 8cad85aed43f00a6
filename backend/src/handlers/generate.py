import base64
import json
import logging
import os
import urllib.parse

import requests


def _resolve_log_level(value):
    # Nível desconhecido em LOG_LEVEL não pode derrubar o cold start
    level = logging.getLevelName(str(value or "").upper())
    return level if isinstance(level, int) else logging.INFO


logger = logging.getLogger(__name__)
logger.setLevel(_resolve_log_level(os.environ.get("LOG_LEVEL", "INFO")))

GEMINI_MODEL = "gemini-2.5-flash-preview-05-20"
GEMINI_API_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/"
    f"{GEMINI_MODEL}:generateContent"
)

ERROR_METHOD_NOT_ALLOWED = "Method Not Allowed"
ERROR_MISSING_API_KEY = "API key is not configured on the server."
ERROR_MISSING_PROMPT = "Prompt is missing from the request."
ERROR_UPSTREAM = "Failed to call the Gemini API."

# --- Padrão Singleton para a sessão HTTP (reaproveita conexões no Warm Start) ---
_HTTP_SESSION = None


class UpstreamError(Exception):
    """O Gemini respondeu com status diferente de 2xx."""

    def __init__(self, status_code, details=None):
        super().__init__(f"Gemini API responded with status {status_code}")
        self.status_code = status_code
        self.details = details


def get_http_session():
    global _HTTP_SESSION
    if _HTTP_SESSION is None:
        _HTTP_SESSION = requests.Session()
    return _HTTP_SESSION


def get_api_key():
    # Lida a cada invocação: a chave nunca fica em estado global
    return os.environ.get("GEMINI_API_KEY")


def build_upstream_request(prompt):
    """Monta a URL fixa e o envelope contents/parts esperado pelo Gemini."""
    payload = {"contents": [{"parts": [{"text": prompt}]}]}
    return GEMINI_API_URL, payload


def extract_method(event):
    # REST API (payload v1) usa httpMethod; HTTP API (payload v2) usa requestContext.http
    method = event.get("httpMethod")
    if not method:
        method = ((event.get("requestContext") or {}).get("http") or {}).get("method")
    return (method or "").upper()


def extract_prompt(event):
    """
    Extrai o campo 'prompt' do body do evento.
    Body ausente, JSON inválido ou prompt que não seja string contam como prompt ausente.
    """
    body = event.get("body")
    if isinstance(body, str):
        try:
            if event.get("isBase64Encoded"):
                body = base64.b64decode(body).decode("utf-8")
            body = json.loads(body) if body else {}
        except ValueError:
            return None

    if not isinstance(body, dict):
        return None

    prompt = body.get("prompt")
    if not isinstance(prompt, str):
        return None
    return prompt


def _redact(text, api_key):
    # Erros de rede do requests/urllib3 trazem a URL completa, com ?key=... já codificada
    if not api_key:
        return text
    for form in (api_key, urllib.parse.quote_plus(api_key), urllib.parse.quote(api_key, safe="")):
        text = text.replace(form, "***")
    return text


def _call_gemini(prompt, api_key, http_session):
    url, payload = build_upstream_request(prompt)

    response = http_session.post(
        url,
        params={"key": api_key},
        headers={"Content-Type": "application/json"},
        json=payload,
    )

    if not response.ok:
        try:
            details = response.json()
        except ValueError:
            details = None
        logger.error(
            "Erro da API Gemini (status %s): %s", response.status_code, _redact(str(details), api_key)
        )
        raise UpstreamError(response.status_code, details)

    return response.json()


def handle_generate(method, body, api_key, http_session):
    """
    Valida a requisição e faz o proxy do prompt para o Gemini.
    Args:
        method: Método HTTP da requisição de entrada.
        body: Dict já decodificado (ou None).
        api_key: Credencial do Gemini lida da configuração do servidor.
        http_session: Transporte com interface de requests.Session.
    Returns:
        Tupla (status, payload) onde payload é serializável em JSON.
    """
    if method != "POST":
        return 405, {"error": ERROR_METHOD_NOT_ALLOWED}

    if not api_key:
        logger.error("GEMINI_API_KEY não configurada no servidor.")
        return 500, {"error": ERROR_MISSING_API_KEY}

    prompt = (body or {}).get("prompt")
    if not prompt or not isinstance(prompt, str):
        return 400, {"error": ERROR_MISSING_PROMPT}

    try:
        data = _call_gemini(prompt, api_key, http_session)
        return 200, data

    except Exception as e:
        logger.error("Falha ao chamar o Gemini: %s: %s", type(e).__name__, _redact(str(e), api_key))
        return 500, {"error": ERROR_UPSTREAM}


def lambda_handler(event, context, http_session=None):
    """
    Proxy do prompt do frontend para o Gemini, mantendo a API key no servidor.
    Rota: POST /generate
    """
    # Injeção de dependência para testes
    session = http_session if http_session else get_http_session()

    method = extract_method(event)
    logger.info("Requisição recebida: %s", method or "<sem método>")

    prompt = extract_prompt(event) if method == "POST" else None
    status, payload = handle_generate(
        method,
        {"prompt": prompt},
        get_api_key(),
        session,
    )

    return {
        "statusCode": status,
        "headers": {
            "Content-Type": "application/json",
            "Access-Control-Allow-Origin": "*"
        },
        "body": json.dumps(payload)
    }
