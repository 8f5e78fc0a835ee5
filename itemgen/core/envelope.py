"""Normalized context bundle handed to every generation stage."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ImagePayload(BaseModel):
    """Raw image bytes supplied alongside the source (e.g. an uploaded screenshot)."""

    model_config = ConfigDict(frozen=True, ser_json_bytes="base64", val_json_bytes="base64")

    data: bytes
    mime_type: str = Field(..., pattern=r"^image/[A-Za-z0-9.+-]+$")


class Envelope(BaseModel):
    primary_content: str
    supplementary_content: List[str] = Field(default_factory=list)
    raster_image_urls: List[str] = Field(default_factory=list)
    vector_image_urls: List[str] = Field(default_factory=list)
    image_payloads: List[ImagePayload] = Field(default_factory=list)

    @field_validator("raster_image_urls", "vector_image_urls")
    @classmethod
    def _dedupe_and_sort(cls, value: List[str]) -> List[str]:
        return sorted(set(value))

    @model_validator(mode="after")
    def _disjoint_url_lists(self) -> "Envelope":
        overlap = set(self.raster_image_urls) & set(self.vector_image_urls)
        if overlap:
            raise ValueError(f"urls listed as both raster and vector: {sorted(overlap)}")
        return self

    @property
    def multimodal_image_urls(self) -> List[str]:
        """Image references sent to the backend as visual context."""
        return list(self.raster_image_urls)

    def summary(self) -> dict:
        return {
            "primary_content_length": len(self.primary_content),
            "supplementary_content_count": len(self.supplementary_content),
            "raster_image_count": len(self.raster_image_urls),
            "vector_image_count": len(self.vector_image_urls),
            "image_payload_count": len(self.image_payloads),
        }


__all__ = ["Envelope", "ImagePayload"]
