import json
import logging
import os
import time
from typing import Any, Optional

import httpx

RESPONSES_URL = "https://api.openai.com/v1/responses"
CHAT_URL = "https://api.openai.com/v1/chat/completions"


class OpenAIError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class OpenAINotConfigured(OpenAIError):
    pass


logger = logging.getLogger("contabil.advisor")


def is_configured() -> bool:
    return bool(os.getenv("OPENAI_API_KEY"))


def _get_api_key() -> str:
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise OpenAINotConfigured("OPENAI_API_KEY nao configurada")
    return api_key


def _extract_json_candidate(raw_text: str) -> str:
    start = raw_text.find("{")
    end = raw_text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise ValueError("JSON nao encontrado no texto")
    return raw_text[start : end + 1]


def _extract_error_message(res: httpx.Response) -> str:
    try:
        payload = res.json()
    except ValueError:
        return res.text
    if isinstance(payload, dict):
        err = payload.get("error") or {}
        return err.get("message") or payload.get("message") or res.text
    return res.text


def _request_with_retry(
    client: httpx.Client,
    url: str,
    body: dict,
    max_attempts: int = 2,
) -> dict:
    last_exc: Exception | None = None
    for attempt in range(max_attempts):
        try:
            res = client.post(url, json=body)
            if res.status_code >= 400:
                message = _extract_error_message(res)
                raise OpenAIError(f"OpenAI erro HTTP {res.status_code}: {message}", status_code=res.status_code)
            return res.json()
        except OpenAIError as exc:
            last_exc = exc
            if exc.status_code is not None and exc.status_code < 500 and exc.status_code != 429:
                break
        except (httpx.HTTPError, ValueError) as exc:
            last_exc = exc
        if attempt + 1 < max_attempts:
            time.sleep(0.4)
    if isinstance(last_exc, OpenAIError):
        raise last_exc
    raise OpenAIError(str(last_exc) if last_exc else "Falha na chamada OpenAI")


def _build_responses_messages(system_prompt: str, user_prompt: str) -> list[dict]:
    return [
        {"role": "system", "content": [{"type": "input_text", "text": system_prompt}]},
        {"role": "user", "content": [{"type": "input_text", "text": user_prompt}]},
    ]


def _build_chat_messages(system_prompt: str, user_prompt: str) -> list[dict]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]


def _should_fallback_to_chat(exc: Exception) -> bool:
    if isinstance(exc, OpenAIError) and exc.status_code in {404, 405}:
        return True
    message = str(exc).lower()
    return "responses" in message and ("not found" in message or "unknown" in message)


def _extract_text(payload: dict) -> str:
    output_text = payload.get("output_text")
    if isinstance(output_text, str) and output_text.strip():
        return output_text
    for item in payload.get("output") or []:
        for content in item.get("content") or []:
            text = content.get("text")
            if isinstance(text, str) and text.strip():
                return text
    choices = payload.get("choices") or []
    if choices:
        message = (choices[0] or {}).get("message") or {}
        content = message.get("content")
        if isinstance(content, str) and content.strip():
            return content
    raise OpenAIError("Resposta sem texto")


def _parse_json(raw_text: str) -> dict:
    if not raw_text or not raw_text.strip():
        raise OpenAIError("Resposta vazia do modelo")
    try:
        data = json.loads(raw_text)
    except json.JSONDecodeError:
        data = json.loads(_extract_json_candidate(raw_text))
    if not isinstance(data, dict):
        raise ValueError("Resposta JSON nao e um objeto")
    return data


def request_structured(
    model: str,
    system_prompt: str,
    user_prompt: str,
    schema_name: str,
    schema: dict,
    validate=None,
) -> tuple[Any, dict[str, Any]]:
    """Ask the model for a JSON document that follows ``schema``.

    ``validate`` receives the decoded dict and returns the parsed object; when it
    raises, one correction round-trip is attempted before giving up.
    """
    api_key = _get_api_key()
    start = time.perf_counter()
    headers = {"Authorization": f"Bearer {api_key}"}
    validate = validate or (lambda data: data)

    responses_body = {
        "model": model,
        "input": _build_responses_messages(system_prompt, user_prompt),
        "temperature": 0.2,
        "text": {
            "format": {
                "type": "json_schema",
                "name": schema_name,
                "schema": schema,
                "strict": True,
            }
        },
    }
    chat_body = {
        "model": model,
        "messages": _build_chat_messages(system_prompt, user_prompt),
        "temperature": 0.2,
        "response_format": {
            "type": "json_schema",
            "json_schema": {"name": schema_name, "schema": schema, "strict": True},
        },
    }

    with httpx.Client(headers=headers, timeout=40.0) as client:
        try:
            payload = _request_with_retry(client, RESPONSES_URL, responses_body)
            used_chat = False
        except OpenAIError as exc:
            if not _should_fallback_to_chat(exc):
                raise
            logger.warning("Falha no endpoint /responses, tentando /chat/completions: %s", exc)
            payload = _request_with_retry(client, CHAT_URL, chat_body)
            used_chat = True

        raw_text = _extract_text(payload)
        try:
            result = validate(_parse_json(raw_text))
        except ValueError:
            logger.warning("Resposta fora do schema %s, solicitando correcao", schema_name)
            correction_prompt = (
                "Corrija o JSON abaixo para seguir exatamente o schema solicitado. "
                "Responda somente com JSON valido, sem comentarios.\n\n"
                f"{raw_text}"
            )
            if used_chat:
                correction_body = {
                    "model": model,
                    "messages": _build_chat_messages(system_prompt, correction_prompt),
                    "temperature": 0,
                    "response_format": chat_body["response_format"],
                }
                correction_url = CHAT_URL
            else:
                correction_body = {
                    "model": model,
                    "input": _build_responses_messages(system_prompt, correction_prompt),
                    "temperature": 0,
                    "text": responses_body["text"],
                }
                correction_url = RESPONSES_URL
            correction_payload = _request_with_retry(client, correction_url, correction_body)
            try:
                result = validate(_parse_json(_extract_text(correction_payload)))
            except ValueError as exc:
                raise OpenAIError(f"Resposta invalida do modelo: {exc}") from exc

    latency_ms = int((time.perf_counter() - start) * 1000)
    usage = payload.get("usage") or {}
    meta = {
        "model": payload.get("model", model),
        "input_tokens": usage.get("input_tokens") or usage.get("prompt_tokens"),
        "output_tokens": usage.get("output_tokens") or usage.get("completion_tokens"),
        "latency_ms": latency_ms,
    }
    return result, meta
