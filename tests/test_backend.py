import unittest
from unittest import mock

from apps.orchestrator.backend import (
    DSPyGenerationBackend,
    GenerationBackend,
    ItemCompiler,
    WidgetRenderer,
    build_messages,
    is_transient_error,
)
from itemgen.core.config import RetryConfig
from itemgen.core.dspy_runtime import DSPyConfigurationError
from itemgen.core.errors import BackendCallError, EmptyBackendResponseError, JSONParseError


class RateLimited(Exception):
    status_code = 429


class BadRequest(Exception):
    status_code = 400


class DSPyGenerationBackendTests(unittest.TestCase):
    def setUp(self) -> None:
        self.lm = mock.Mock()
        self.sleeps: list[float] = []
        self.backend = DSPyGenerationBackend(
            self.lm,
            retry=RetryConfig(max_retries=2, base_delay_seconds=0.5, max_delay_seconds=1.0),
            sleep=self.sleeps.append,
        )

    def test_passes_strict_json_schema_response_format(self) -> None:
        self.lm.return_value = ['{"identifier": "item-1"}']
        schema = {"type": "object", "properties": {"identifier": {"type": "string"}}}

        result = self.backend.generate("assessment_shell_generator", schema, "system", "user", ["https://cdn/a.png"])

        self.assertEqual(result, {"identifier": "item-1"})
        kwargs = self.lm.call_args.kwargs
        self.assertEqual(
            kwargs["response_format"],
            {
                "type": "json_schema",
                "json_schema": {"name": "assessment_shell_generator", "schema": schema, "strict": True},
            },
        )
        self.assertEqual(kwargs["messages"][0], {"role": "system", "content": "system"})
        self.assertEqual(kwargs["messages"][1]["content"][1]["image_url"]["url"], "https://cdn/a.png")

    def test_retries_transient_failures(self) -> None:
        self.lm.side_effect = [RateLimited("slow down"), RateLimited("slow down"), ['{"ok": true}']]

        result = self.backend.generate("feedback_generator", {}, "system", "user")

        self.assertEqual(result, {"ok": True})
        self.assertEqual(self.lm.call_count, 3)
        self.assertEqual(len(self.sleeps), 2)
        self.assertTrue(all(delay <= 1.2 for delay in self.sleeps))

    def test_gives_up_after_max_retries(self) -> None:
        self.lm.side_effect = RateLimited("slow down")

        with self.assertRaises(BackendCallError) as ctx:
            self.backend.generate("feedback_generator", {}, "system", "user")

        self.assertEqual(self.lm.call_count, 3)
        self.assertIsInstance(ctx.exception.__cause__, RateLimited)

    def test_non_transient_errors_are_not_retried(self) -> None:
        self.lm.side_effect = BadRequest("schema rejected")

        with self.assertRaises(BackendCallError):
            self.backend.generate("feedback_generator", {}, "system", "user")

        self.assertEqual(self.lm.call_count, 1)
        self.assertEqual(self.sleeps, [])

    def test_empty_output_raises_empty_response(self) -> None:
        self.lm.return_value = []

        with self.assertRaises(EmptyBackendResponseError):
            self.backend.generate("feedback_generator", {}, "system", "user")

    def test_invalid_json_raises_parse_error(self) -> None:
        self.lm.return_value = [{"text": "not json"}]

        with self.assertRaises(JSONParseError):
            self.backend.generate("feedback_generator", {}, "system", "user")

    @mock.patch("apps.orchestrator.backend.dspy")
    def test_requires_configured_lm(self, mock_dspy) -> None:
        mock_dspy.settings.lm = None

        with self.assertRaises(DSPyConfigurationError):
            DSPyGenerationBackend()

    @mock.patch("apps.orchestrator.backend.dspy")
    def test_defaults_to_dspy_settings_lm(self, mock_dspy) -> None:
        backend = DSPyGenerationBackend()

        self.assertIs(backend.lm, mock_dspy.settings.lm)


class TransientErrorTests(unittest.TestCase):
    def test_classifies_status_codes_and_messages(self) -> None:
        self.assertTrue(is_transient_error(RateLimited()))
        self.assertTrue(is_transient_error(TimeoutError()))
        self.assertTrue(is_transient_error(RuntimeError("Error code: 503 - service unavailable")))
        self.assertTrue(is_transient_error(OSError("read ECONNRESET")))
        self.assertFalse(is_transient_error(BadRequest("bad")))
        self.assertFalse(is_transient_error(ValueError("invalid schema")))

    def test_build_messages_without_images_uses_plain_text(self) -> None:
        messages = build_messages("system", "user", [])

        self.assertEqual(messages[1], {"role": "user", "content": "user"})


class CapabilityProtocolTests(unittest.TestCase):
    def test_structural_checks(self) -> None:
        class SvgRenderer:
            def render(self, widget_type, params):
                return f"<svg data-type='{widget_type}'/>"

        class JsonCompiler:
            def compile(self, item):
                return item.model_dump_json(by_alias=True)

        self.assertIsInstance(SvgRenderer(), WidgetRenderer)
        self.assertIsInstance(JsonCompiler(), ItemCompiler)
        self.assertNotIsInstance(SvgRenderer(), ItemCompiler)
        self.assertIsInstance(DSPyGenerationBackend(mock.Mock()), GenerationBackend)


if __name__ == "__main__":
    unittest.main()
