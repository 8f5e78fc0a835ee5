"""Renderer parameter models for the widget types the pipeline can generate.

A widget type is only usable when it has a model here: the widgets stage asks
the backend for exactly these parameters, and the assembled item stores the
validated model.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import Field, TypeAdapter, model_validator

from .content import WireModel, node_tags


class WidgetModel(WireModel):
    """Base for widget parameter models; ``type`` names the renderer."""

    @property
    def params(self) -> Dict[str, Any]:
        wire = self.to_wire()
        wire.pop("type", None)
        return wire


class UrlImageWidget(WidgetModel):
    """Static image loaded from a direct https URL."""

    type: Literal["urlImage"] = "urlImage"
    url: str = Field(..., pattern=r"^https://.+\.(?:svg|png|jpe?g|gif)$")
    alt: str = Field(..., description="Plain-text alternative text.")
    width: Optional[float] = Field(default=None, gt=0)
    height: Optional[float] = Field(default=None, gt=0)
    caption: Optional[str] = None
    attribution: Optional[str] = None


class EmojiImageWidget(WidgetModel):
    type: Literal["emojiImage"] = "emojiImage"
    emoji: str = Field(..., min_length=1)
    size: float = Field(..., gt=0, le=512)


class NumberLinePoint(WireModel):
    value: float
    label: Optional[str] = None
    color: Optional[str] = None
    style: Literal["dot", "arrowAndDot"] = "dot"


class NumberLineWidget(WidgetModel):
    type: Literal["numberLine"] = "numberLine"
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)
    min: float
    max: float
    tick_interval: float = Field(..., gt=0)
    highlighted_points: List[NumberLinePoint] = Field(default_factory=list)

    @model_validator(mode="after")
    def _range_is_ordered(self) -> "NumberLineWidget":
        if self.min >= self.max:
            raise ValueError(f"number line min ({self.min}) must be below max ({self.max})")
        return self


class BarChartAxis(WireModel):
    label: str
    min: float
    max: float
    tick_interval: float = Field(..., gt=0)


class BarChartBar(WireModel):
    label: str
    value: float
    state: Literal["normal", "unfilled"] = "normal"


class BarChartWidget(WidgetModel):
    type: Literal["barChart"] = "barChart"
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)
    title: Optional[str] = None
    x_axis_label: str
    y_axis: BarChartAxis
    data: List[BarChartBar] = Field(..., min_length=1)
    bar_color: Optional[str] = None


class RichTableCell(WireModel):
    text: str
    mathml: str


TableCell = Union[str, RichTableCell]


class DataTableWidget(WidgetModel):
    type: Literal["dataTable"] = "dataTable"
    caption: Optional[str] = None
    headers: List[TableCell] = Field(..., min_length=1)
    rows: List[List[Optional[TableCell]]] = Field(..., min_length=1)
    row_headers: bool = False

    @model_validator(mode="after")
    def _rows_match_headers(self) -> "DataTableWidget":
        for index, row in enumerate(self.rows):
            if len(row) != len(self.headers):
                raise ValueError(f"row {index} has {len(row)} cells but expected {len(self.headers)}")
        return self


AnyWidget = Annotated[
    Union[UrlImageWidget, EmojiImageWidget, NumberLineWidget, BarChartWidget, DataTableWidget],
    Field(discriminator="type"),
]

WidgetAdapter: TypeAdapter[WidgetModel] = TypeAdapter(AnyWidget)
WIDGET_TYPES = node_tags(AnyWidget)
WIDGET_MODELS: Dict[str, type[WidgetModel]] = {
    model.model_fields["type"].default: model
    for model in (UrlImageWidget, EmojiImageWidget, NumberLineWidget, BarChartWidget, DataTableWidget)
}


__all__ = [
    "AnyWidget",
    "BarChartWidget",
    "DataTableWidget",
    "EmojiImageWidget",
    "NumberLineWidget",
    "UrlImageWidget",
    "WIDGET_MODELS",
    "WIDGET_TYPES",
    "WidgetAdapter",
    "WidgetModel",
]
