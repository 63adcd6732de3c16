import unittest
from unittest.mock import MagicMock, patch

import requests

from library_backend.errors import UpstreamFailure, UpstreamTimeout
from library_backend.providers.base import SYSTEM_INSTRUCTION, ChatTurn
from library_backend.providers.gemini import GeminiProvider, build_gemini_contents
from library_backend.providers.openai_responses import (
    OPENAI_RESPONSES_URL,
    OpenAIResponsesProvider,
    build_openai_input,
)


def _response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.json.return_value = payload or {}
    return response


class BuildInputTests(unittest.TestCase):
    def test_empty_history_adds_exactly_one_user_turn(self):
        items = build_openai_input("hello", [])
        self.assertEqual(
            items,
            [
                {"role": "developer", "content": SYSTEM_INSTRUCTION},
                {"role": "user", "content": "hello"},
            ],
        )

    def test_history_sits_between_instruction_and_message(self):
        history = [ChatTurn("user", "hi"), ChatTurn("assistant", "hello ji")]
        items = build_openai_input("fees?", history)
        self.assertEqual([i["role"] for i in items], ["developer", "user", "assistant", "user"])
        self.assertEqual(items[-1]["content"], "fees?")

    def test_gemini_contents_map_assistant_to_model(self):
        contents = build_gemini_contents("fees?", [ChatTurn("assistant", "hello ji")])
        self.assertEqual([c.role for c in contents], ["model", "user"])
        self.assertEqual(contents[-1].parts[0].text, "fees?")


class OpenAIResponsesProviderTests(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.provider = OpenAIResponsesProvider(
            api_key="sk-test", model="gpt-5", timeout=20, session=self.session
        )

    def test_posts_to_responses_api(self):
        self.session.post.return_value = _response(payload={"output_text": "Namaste"})
        completion = self.provider.complete("hello", [])

        self.assertEqual(completion.text, "Namaste")
        self.assertEqual(completion.provider, "openai")
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], OPENAI_RESPONSES_URL)
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer sk-test")
        self.assertEqual(kwargs["timeout"], 20)
        self.assertEqual(kwargs["json"]["model"], "gpt-5")
        self.assertEqual(kwargs["json"]["temperature"], 0.4)

    def test_reads_text_from_output_blocks(self):
        payload = {
            "output": [
                {"type": "reasoning", "content": []},
                {"type": "message", "content": [{"type": "output_text", "text": "Haan ji"}]},
            ]
        }
        self.session.post.return_value = _response(payload=payload)
        self.assertEqual(self.provider.complete("hello", []).text, "Haan ji")

    def test_non_2xx_is_upstream_failure(self):
        self.session.post.return_value = _response(status_code=500)
        with self.assertRaises(UpstreamFailure) as ctx:
            self.provider.complete("hello", [])
        self.assertEqual(ctx.exception.message, "OpenAI error 500")

    def test_timeout(self):
        self.session.post.side_effect = requests.Timeout("read timed out")
        with self.assertRaises(UpstreamTimeout):
            self.provider.complete("hello", [])

    def test_empty_text_is_failure(self):
        self.session.post.return_value = _response(payload={"output": []})
        with self.assertRaises(UpstreamFailure):
            self.provider.complete("hello", [])

    def test_non_object_json_is_failure(self):
        self.session.post.return_value = _response(payload=["not", "a", "dict"])
        with self.assertRaises(UpstreamFailure) as ctx:
            self.provider.complete("hello", [])
        self.assertEqual(ctx.exception.message, "OpenAI returned an unexpected payload")

    def test_malformed_output_entries_are_skipped(self):
        payload = {
            "output_text": 42,
            "output": [
                "junk",
                {"type": "message", "content": "not a list"},
                {"type": "message", "content": ["junk", {"type": "output_text", "text": 7}]},
                {"type": "message", "content": [{"type": "output_text", "text": "Theek hai"}]},
            ],
        }
        self.session.post.return_value = _response(payload=payload)
        self.assertEqual(self.provider.complete("hello", []).text, "Theek hai")

        self.session.post.return_value = _response(payload={"output": {"type": "message"}})
        with self.assertRaises(UpstreamFailure) as ctx:
            self.provider.complete("hello", [])
        self.assertEqual(ctx.exception.message, "OpenAI returned an empty response")

    def test_requires_api_key(self):
        with self.assertRaises(ValueError):
            OpenAIResponsesProvider(api_key="")


class GeminiProviderTests(unittest.TestCase):
    def setUp(self):
        patcher = patch("library_backend.providers.gemini.genai.Client")
        self.mock_client_cls = patcher.start()
        self.addCleanup(patcher.stop)
        self.generate = self.mock_client_cls.return_value.models.generate_content

    def test_tries_models_in_order(self):
        self.generate.side_effect = [
            RuntimeError("429 RESOURCE_EXHAUSTED"),
            MagicMock(text=""),
            MagicMock(text="Theek hai"),
        ]
        provider = GeminiProvider(api_key="g", models=["m1", "m2", "m3"])
        completion = provider.complete("hello", [])

        self.assertEqual(completion.text, "Theek hai")
        self.assertEqual(completion.provider, "gemini")
        self.assertEqual(completion.model, "m3")
        self.assertEqual(
            [c.kwargs["model"] for c in self.generate.call_args_list], ["m1", "m2", "m3"]
        )
        config = self.generate.call_args.kwargs["config"]
        self.assertEqual(config.system_instruction, SYSTEM_INSTRUCTION)

    def test_all_models_failing(self):
        self.generate.side_effect = RuntimeError("boom")
        provider = GeminiProvider(api_key="g", models=["m1", "m2"])
        with self.assertRaises(UpstreamFailure) as ctx:
            provider.complete("hello", [])
        self.assertIn("boom", ctx.exception.message)
        self.assertEqual(self.generate.call_count, 2)

    def test_timeout_passed_in_milliseconds(self):
        GeminiProvider(api_key="g", models=["m1"], timeout=20)
        http_options = self.mock_client_cls.call_args.kwargs["http_options"]
        self.assertEqual(http_options.timeout, 20000)


if __name__ == "__main__":
    unittest.main()
