import tempfile
import unittest
from pathlib import Path

from pydantic import ValidationError

from itemgen import get_version
from itemgen.core.content import BLOCK_NODE_TYPES, INLINE_NODE_TYPES, BlockContentAdapter
from itemgen.core.envelope import ImagePayload
from itemgen.core.errors import MissingGeneratedContentError, ReferenceConflictError
from itemgen.core.interactions import INTERACTION_TYPES, InteractionMapAdapter
from itemgen.core.item import AssessmentItemShell
from itemgen.core.provenance import ProvenanceEvent, ProvenanceLogger
from itemgen.core.validation import SchemaValidator, ValidationFailure, validation
from itemgen.core.widgets import WIDGET_TYPES, NumberLineWidget, UrlImageWidget, WidgetAdapter


class ContentModelTests(unittest.TestCase):
    def test_blocks_parse_camel_case_and_dump_by_alias(self) -> None:
        blocks = BlockContentAdapter.validate_python(
            [{"type": "widgetRef", "widgetId": "img1", "widgetType": "urlImage"}]
        )

        self.assertEqual(blocks[0].widget_id, "img1")
        dumped = BlockContentAdapter.dump_python(blocks, mode="json", by_alias=True)
        self.assertEqual(dumped, [{"type": "widgetRef", "widgetId": "img1", "widgetType": "urlImage"}])

    def test_unknown_node_type_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            BlockContentAdapter.validate_python([{"type": "video", "src": "x"}])

    def test_unknown_fields_are_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            BlockContentAdapter.validate_python([{"type": "codeBlock", "code": "x", "language": "py"}])

    def test_node_type_tables(self) -> None:
        self.assertEqual(
            set(INLINE_NODE_TYPES),
            {"text", "math", "inlineWidgetRef", "inlineInteractionRef", "gap"},
        )
        self.assertIn("tableRich", BLOCK_NODE_TYPES)
        self.assertEqual(len(BLOCK_NODE_TYPES), 8)
        self.assertIn("unsupportedInteraction", INTERACTION_TYPES)

    def test_shell_requires_a_response_declaration(self) -> None:
        with self.assertRaises(ValidationError):
            AssessmentItemShell.model_validate({"identifier": "x", "title": "t", "responseDeclarations": []})

    def test_interaction_map_accepts_unsupported_placeholder(self) -> None:
        interactions = InteractionMapAdapter.validate_python(
            {"legacy": {"type": "unsupportedInteraction", "perseusType": "plotter", "responseIdentifier": "R"}}
        )

        self.assertEqual(interactions["legacy"].perseus_type, "plotter")

    def test_widget_params_exclude_the_type_tag(self) -> None:
        widget = WidgetAdapter.validate_python({"type": "urlImage", "url": "https://x/a.png", "alt": "A"})

        self.assertIsInstance(widget, UrlImageWidget)
        self.assertEqual(widget.params["url"], "https://x/a.png")
        self.assertNotIn("type", widget.params)

    def test_widget_parameters_are_typed(self) -> None:
        with self.assertRaises(ValidationError):
            WidgetAdapter.validate_python({"type": "urlImage", "url": "https://x/a.png", "colour": "red"})
        with self.assertRaises(ValidationError):
            WidgetAdapter.validate_python({"type": "urlImage", "url": "ftp://x/a.png", "alt": "A"})
        with self.assertRaises(ValidationError):
            WidgetAdapter.validate_python({"type": "vennDiagram"})

    def test_number_line_range_must_be_ordered(self) -> None:
        with self.assertRaises(ValidationError):
            NumberLineWidget.model_validate({"width": 400, "height": 80, "min": 5, "max": 0, "tickInterval": 1})

    def test_null_optional_parameters_fall_back_to_defaults(self) -> None:
        widget = NumberLineWidget.model_validate(
            {
                "width": 400,
                "height": 80,
                "min": 0,
                "max": 10,
                "tickInterval": 1,
                "highlightedPoints": None,
            }
        )

        self.assertEqual(widget.highlighted_points, [])

    def test_widget_type_table(self) -> None:
        self.assertEqual(
            set(WIDGET_TYPES),
            {"urlImage", "emojiImage", "numberLine", "barChart", "dataTable"},
        )

    def test_image_payload_requires_image_mime_type(self) -> None:
        with self.assertRaises(ValidationError):
            ImagePayload(data=b"abc", mime_type="text/plain")


class ErrorTests(unittest.TestCase):
    def test_version_is_a_string(self) -> None:
        self.assertIsInstance(get_version(), str)

    def test_errors_carry_stage_and_details(self) -> None:
        error = ReferenceConflictError("img1", "urlImage", "emojiImage", stage="widget_refs")

        self.assertIn("img1", str(error))
        self.assertTrue(str(error).startswith("[widget_refs]"))

    def test_missing_ids_are_sorted(self) -> None:
        error = MissingGeneratedContentError(["w2", "w1"])

        self.assertEqual(error.missing_ids, ["w1", "w2"])


class ValidationTests(unittest.TestCase):
    def test_strict_file_validation_raises(self) -> None:
        with self.assertRaises(ValidationFailure):
            SchemaValidator(strict=True).validate_file_exists(Path("/nonexistent/pipeline.yaml"))

    def test_non_strict_file_validation_reports(self) -> None:
        result = validation.validate_file_exists(Path("/nonexistent/pipeline.yaml"))

        self.assertFalse(result.valid)
        self.assertIn("does not exist", result.errors[0])

    def test_validate_schema_collects_error_locations(self) -> None:
        result = validation.validate_schema({"identifier": "x"}, AssessmentItemShell)

        self.assertFalse(result.valid)
        self.assertTrue(any(error.startswith("title") for error in result.errors))


class ProvenanceLoggerTests(unittest.TestCase):
    def test_logger_writes_and_reads_jsonl(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            logger = ProvenanceLogger(Path(tmp) / "nested" / "provenance.jsonl")
            self.assertEqual(logger.read(), [])

            logger.log({"stage": "shell", "message": "Reached shell", "payload": {"identifier": "x"}})
            logger.log(ProvenanceEvent(stage="widgets", message="Reached widgets"))

            events = logger.read()
            self.assertEqual([event.stage for event in events], ["shell", "widgets"])
            self.assertEqual(events[0].payload, {"identifier": "x"})
            self.assertEqual(events[0].agent, "system")
            self.assertIsNone(events[0].run_id)

    def test_bound_logger_stamps_run_id_and_agent(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = ProvenanceLogger(Path(tmp) / "provenance.jsonl")
            first = root.bind(run_id="run-1", agent="apps.orchestrator")
            second = root.bind(run_id="run-2")

            first.record("shell", "Reached shell", {"identifier": "x"})
            second.record("shell", "Reached shell")
            first.log({"stage": "widgets", "message": "Reached widgets"})

            self.assertEqual(len(root.read()), 3)
            run_one = root.read(run_id="run-1")
            self.assertEqual([event.stage for event in run_one], ["shell", "widgets"])
            self.assertEqual(run_one[0].agent, "apps.orchestrator")
            self.assertEqual([event.run_id for event in root.read(stage="shell")], ["run-1", "run-2"])

    def test_unknown_event_fields_are_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            logger = ProvenanceLogger(Path(tmp) / "provenance.jsonl")
            with self.assertRaises(ValidationError):
                logger.log({"stage": "shell", "message": "m", "severity": "high"})


if __name__ == "__main__":
    unittest.main()
