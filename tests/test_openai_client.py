import json
import os
import unittest
from unittest.mock import patch

import httpx
import pytest

from contabil.advisor import openai_client
from contabil.advisor.openai_client import (
    CHAT_URL,
    RESPONSES_URL,
    OpenAIError,
    OpenAINotConfigured,
    request_structured,
)
from contabil.advisor.schemas import OpportunityResult, opportunity_json_schema

VALID = {
    "opportunities": [
        {
            "title": "Edital merenda",
            "description": "Compra de paes",
            "type": "Licitacao",
            "source": "https://gov.br/edital",
            "submission_deadline": None,
        }
    ]
}


def _responses_payload(data, model="gpt-test"):
    return {
        "model": model,
        "output_text": json.dumps(data),
        "usage": {"input_tokens": 120, "output_tokens": 40},
    }


def _chat_payload(data):
    return {
        "model": "gpt-test",
        "choices": [{"message": {"content": json.dumps(data)}}],
        "usage": {"prompt_tokens": 100, "completion_tokens": 30},
    }


def _call():
    return request_structured(
        "gpt-test",
        "sistema",
        "usuario",
        "opportunities",
        opportunity_json_schema(),
        validate=OpportunityResult.model_validate,
    )


@patch("contabil.advisor.openai_client.time.sleep")
@patch.object(httpx.Client, "post")
@patch.dict(os.environ, {"OPENAI_API_KEY": "test"})
class RequestStructuredTests(unittest.TestCase):
    def _urls(self, mock_post):
        return [c.args[0] for c in mock_post.call_args_list]

    def test_responses_endpoint_success(self, mock_post, mock_sleep):
        mock_post.return_value = httpx.Response(200, json=_responses_payload(VALID))

        result, meta = _call()

        self.assertEqual(result.opportunities[0].title, "Edital merenda")
        self.assertEqual(self._urls(mock_post), [RESPONSES_URL])
        self.assertEqual(meta["model"], "gpt-test")
        self.assertEqual(meta["input_tokens"], 120)
        self.assertEqual(meta["output_tokens"], 40)
        body = mock_post.call_args.kwargs["json"]
        self.assertEqual(body["text"]["format"]["name"], "opportunities")
        self.assertTrue(body["text"]["format"]["strict"])
        mock_sleep.assert_not_called()

    def test_not_found_falls_back_to_chat(self, mock_post, mock_sleep):
        mock_post.side_effect = [
            httpx.Response(404, json={"error": {"message": "Unknown endpoint"}}),
            httpx.Response(200, json=_chat_payload(VALID)),
        ]

        result, meta = _call()

        self.assertEqual(len(result.opportunities), 1)
        self.assertEqual(self._urls(mock_post), [RESPONSES_URL, CHAT_URL])
        self.assertEqual(meta["input_tokens"], 100)
        chat_body = mock_post.call_args.kwargs["json"]
        self.assertEqual(chat_body["response_format"]["type"], "json_schema")
        mock_sleep.assert_not_called()

    def test_server_error_is_retried(self, mock_post, mock_sleep):
        mock_post.side_effect = [
            httpx.Response(500, json={"error": {"message": "overloaded"}}),
            httpx.Response(200, json=_responses_payload(VALID)),
        ]

        result, _ = _call()

        self.assertEqual(len(result.opportunities), 1)
        self.assertEqual(self._urls(mock_post), [RESPONSES_URL, RESPONSES_URL])
        mock_sleep.assert_called_once_with(0.4)

    def test_client_error_is_not_retried(self, mock_post, mock_sleep):
        mock_post.return_value = httpx.Response(400, json={"error": {"message": "schema invalido"}})

        with self.assertRaises(OpenAIError) as ctx:
            _call()

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertIn("schema invalido", str(ctx.exception))
        self.assertEqual(mock_post.call_count, 1)
        mock_sleep.assert_not_called()

    def test_rate_limit_is_retried(self, mock_post, mock_sleep):
        mock_post.side_effect = [
            httpx.Response(429, json={"error": {"message": "slow down"}}),
            httpx.Response(200, json=_responses_payload(VALID)),
        ]

        _call()

        self.assertEqual(mock_post.call_count, 2)

    def test_repeated_server_error_gives_up(self, mock_post, mock_sleep):
        mock_post.return_value = httpx.Response(500, json={"error": {"message": "overloaded"}})

        with self.assertRaises(OpenAIError) as ctx:
            _call()

        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(mock_post.call_count, 2)

    def test_transport_error_is_retried(self, mock_post, mock_sleep):
        mock_post.side_effect = [
            httpx.ConnectError("conexao recusada"),
            httpx.Response(200, json=_responses_payload(VALID)),
        ]

        result, _ = _call()

        self.assertEqual(len(result.opportunities), 1)
        self.assertEqual(mock_post.call_count, 2)

    def test_invalid_output_gets_one_correction(self, mock_post, mock_sleep):
        mock_post.side_effect = [
            httpx.Response(200, json=_responses_payload({"opportunities": "nenhuma"})),
            httpx.Response(200, json=_responses_payload(VALID)),
        ]

        result, _ = _call()

        self.assertEqual(result.opportunities[0].type, "Licitacao")
        self.assertEqual(self._urls(mock_post), [RESPONSES_URL, RESPONSES_URL])
        correction = mock_post.call_args.kwargs["json"]
        self.assertEqual(correction["temperature"], 0)
        self.assertIn("Corrija o JSON", correction["input"][1]["content"][0]["text"])

    def test_correction_uses_chat_after_fallback(self, mock_post, mock_sleep):
        mock_post.side_effect = [
            httpx.Response(405, json={"error": {"message": "method not allowed"}}),
            httpx.Response(200, json=_chat_payload({"opportunities": "nenhuma"})),
            httpx.Response(200, json=_chat_payload(VALID)),
        ]

        _call()

        self.assertEqual(self._urls(mock_post), [RESPONSES_URL, CHAT_URL, CHAT_URL])
        correction = mock_post.call_args.kwargs["json"]
        self.assertIn("Corrija o JSON", correction["messages"][1]["content"])

    def test_invalid_correction_raises(self, mock_post, mock_sleep):
        mock_post.return_value = httpx.Response(200, json=_responses_payload({"opportunities": "nenhuma"}))

        with self.assertRaises(OpenAIError) as ctx:
            _call()

        self.assertIn("Resposta invalida do modelo", str(ctx.exception))
        self.assertEqual(mock_post.call_count, 2)

    def test_text_around_json_is_ignored(self, mock_post, mock_sleep):
        payload = {"model": "gpt-test", "output_text": f"Segue:\n{json.dumps(VALID)}\nFim."}
        mock_post.return_value = httpx.Response(200, json=payload)

        result, meta = _call()

        self.assertEqual(len(result.opportunities), 1)
        self.assertIsNone(meta["input_tokens"])


@patch.object(httpx.Client, "post")
def test_missing_key_never_calls_api(mock_post):
    with patch.dict(os.environ, {}, clear=False):
        os.environ.pop("OPENAI_API_KEY", None)
        assert openai_client.is_configured() is False
        with pytest.raises(OpenAINotConfigured):
            _call()

    mock_post.assert_not_called()
