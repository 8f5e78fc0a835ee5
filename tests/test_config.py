from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from itemgen.core.config import GenerationConfig, WidgetCollectionConfig, load_generation_config
from itemgen.core.widgets import WIDGET_TYPES

REPO_ROOT = Path(__file__).resolve().parents[1]


def _write(tmp_path: Path, payload: dict) -> Path:
    path = tmp_path / "pipeline.yaml"
    path.write_text(yaml.safe_dump(payload), encoding="utf-8")
    return path


def test_sample_config_loads() -> None:
    config = load_generation_config(REPO_ROOT / "config" / "pipeline.yaml")

    assert config.models.generator_model == "gpt-5"
    assert config.limits.max_images_per_request == 500
    assert config.limits.max_image_payload_bytes == 50 * 1024 * 1024
    assert config.widgets.allows("urlImage")


def test_defaults_fill_missing_sections(tmp_path: Path) -> None:
    config = load_generation_config(_write(tmp_path, {"widgets": {"widget_types": ["barChart"]}}))

    assert config.limits.fetch_timeout_seconds == 5.0
    assert config.limits.max_concurrent_fetches == 8
    assert config.retry.max_retries == 3
    assert config.models.temperature == 1.0


def test_missing_widgets_section_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError) as excinfo:
        load_generation_config(_write(tmp_path, {"models": {"generator": {"model": "gpt-5"}}}))

    assert "Invalid generation config" in str(excinfo.value)
    assert "Missing config sections: widgets" in str(excinfo.value.__cause__)


def test_unknown_limit_keys_are_rejected(tmp_path: Path) -> None:
    payload = {"widgets": {"widget_types": []}, "limits": {"max_images": 10}}

    with pytest.raises(ValueError):
        load_generation_config(_write(tmp_path, payload))


def test_flat_model_key_is_coerced() -> None:
    config = GenerationConfig.model_validate(
        {"models": {"model": "gpt-4o", "temperature": 0.2, "max_tokens": 4096}, "widgets": {}}
    )

    assert config.models.generator_model == "gpt-4o"
    assert config.models.temperature == 0.2
    assert config.models.max_tokens == 4096


def test_widget_types_accept_comma_string() -> None:
    widgets = WidgetCollectionConfig(widget_types=" urlImage, barChart ,, ")

    assert widgets.widget_types == ["urlImage", "barChart"]
    assert widgets.allows("barChart")
    assert not widgets.allows("emojiImage")
    assert not widgets.allows(None)


def test_root_must_be_mapping(tmp_path: Path) -> None:
    path = tmp_path / "pipeline.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_generation_config(path)


def test_default_collection_covers_every_modelled_widget_type() -> None:
    widgets = WidgetCollectionConfig()

    assert widgets.widget_types == list(WIDGET_TYPES)
    assert widgets.allows("dataTable")


def test_widget_types_without_a_parameter_model_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValidationError, match="unsupported widget types: vennDiagram"):
        WidgetCollectionConfig(widget_types=["urlImage", "vennDiagram"])
    with pytest.raises(ValueError):
        load_generation_config(_write(tmp_path, {"widgets": {"widget_types": ["vennDiagram"]}}))
