"""Transient results passed between the workflow and the API layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from models.image_record import ImageRecord


@dataclass
class PartialAnalysis:
    """Outcome of the analyze phase; everything the generate phase needs."""

    diagnosis_points: List[str]
    contamination_level: int
    original_image_url: str
    description: str
    original_image_key: str
    prompt_for_dalle: str

    def to_response(self) -> Dict[str, Any]:
        return {
            "diagnosisPoints": list(self.diagnosis_points),
            "contaminationLevel": self.contamination_level,
            "originalImageUrl": self.original_image_url,
            "description": self.description,
            "originalImageKey": self.original_image_key,
            "promptForDalle": self.prompt_for_dalle,
        }


@dataclass
class SignedImage:
    """A persisted record together with URLs signed at read time."""

    record: ImageRecord
    original_image_url: str = ""
    detoxified_image_url: str = ""

    def to_response(self) -> Dict[str, Any]:
        record = self.record
        return {
            "id": record.id,
            "diagnosisPoints": list(record.diagnosis_points),
            "treatmentPoints": list(record.treatment_points),
            "contaminationLevel": record.contamination_level,
            "originalImageUrl": self.original_image_url,
            "detoxifiedImageUrl": self.detoxified_image_url,
            "description": record.description or "",
            "isPublic": record.is_public,
            "createdAt": record.created_at,
            "shareableUrl": record.shareable_url,
        }

    def to_creation_response(self) -> Dict[str, Any]:
        """Response body of the generate phase."""
        return {
            "id": self.record.id,
            "treatmentPoints": list(self.record.treatment_points),
            "detoxifiedImageUrl": self.detoxified_image_url,
            "shareableUrl": self.record.shareable_url,
        }


@dataclass
class GalleryEntry:
    id: int
    original_image_url: str
    detoxified_image_url: str
    contamination_level: int

    def to_response(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "originalImageUrl": self.original_image_url,
            "detoxifiedImageUrl": self.detoxified_image_url,
            "contaminationLevel": self.contamination_level,
        }

