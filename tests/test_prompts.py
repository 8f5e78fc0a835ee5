import json
import unittest

from apps.orchestrator.feedback_plan import build_feedback_plan
from apps.orchestrator.prompts import feedback_prompt, interactions_prompt, shell_prompt, widgets_prompt
from itemgen.core.envelope import Envelope
from itemgen.core.interactions import InteractionMapAdapter
from itemgen.core.item import AssessmentItemShell
from tests.mocks.generation import CHOICE_INTERACTIONS, CHOICE_SHELL

SOURCE = json.dumps({"question": {"content": "Which fruit is red?", "hints": ["Think of pie."]}}, indent=2)


class PromptTests(unittest.TestCase):
    def setUp(self) -> None:
        self.envelope = Envelope(primary_content=SOURCE, supplementary_content=["<!-- URL: u -->\n<svg/>"])
        self.shell = AssessmentItemShell.model_validate(CHOICE_SHELL)
        self.interactions = InteractionMapAdapter.validate_python(CHOICE_INTERACTIONS)

    def test_shell_prompt_keeps_multiline_source_verbatim(self) -> None:
        system, user = shell_prompt(self.envelope, 2, ["urlImage", "barChart"])

        self.assertFalse(system.startswith(" "))
        self.assertEqual(user.splitlines()[0], "Allowed widget types: urlImage, barChart")
        self.assertIn(f"\nSource item:\n<source>\n{SOURCE}\n</source>\n", user)
        self.assertIn("\nSupplementary vector graphics:\n<!-- URL: u -->\n<svg/>\n", user)
        self.assertTrue(user.endswith("2 raster image(s) are attached for visual context."))

    def test_empty_widget_types_and_supplementary_content(self) -> None:
        _, user = shell_prompt(Envelope(primary_content="x"), 0, [])

        self.assertIn("Allowed widget types: (none)", user)
        self.assertIn("Supplementary vector graphics:\n(none)", user)

    def test_interactions_prompt_lists_ids_and_shell_json(self) -> None:
        _, user = interactions_prompt(self.envelope, self.shell, ["choice_1"], ["urlImage"])

        self.assertEqual(user.splitlines()[0], "Interaction ids to generate: choice_1")
        self.assertIn("\nItem shell:\n{\n", user)
        self.assertIn(json.dumps(self.shell.to_wire(), indent=2, ensure_ascii=False), user)

    def test_feedback_prompt_lists_every_outcome(self) -> None:
        plan = build_feedback_plan(self.shell.response_declarations, self.interactions)

        _, user = feedback_prompt(self.shell, plan, self.interactions)

        self.assertEqual(user.splitlines()[:2], ["Feedback mode: nested", "Outcomes (2):"])
        self.assertIn('"id": "FB__RESPONSE_A"', user)
        self.assertIn('\n    "id": "FB__RESPONSE_B"', user)

    def test_widgets_prompt_maps_ids_to_types(self) -> None:
        _, user = widgets_prompt(self.envelope, self.shell, {"img1": "urlImage"}, self.interactions)

        self.assertTrue(user.startswith('Widgets to generate (id -> type):\n{\n  "img1": "urlImage"\n}'))
        self.assertIn(SOURCE, user)


if __name__ == "__main__":
    unittest.main()
