from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class ImageRecord:
    """In-memory representation of a row in the `images` table.

    Attributes:
        id: Primary key (None for new records).
        original_image_key: Storage key of the uploaded image.
        detoxified_image_key: Storage key of the generated image.
        diagnosis_points: Ordered commentary produced by the vision model.
        treatment_points: Ordered treatment lines produced in the second phase.
        contamination_level: Score in [1, 100].
        description: Scene description the generation prompt was built from.
        is_public: Whether the record appears in the gallery.
        created_at: Unix timestamp (seconds) when the row was inserted.
        user_id: Owning user; always None while there is no auth flow.
    """

    id: Optional[int]
    original_image_key: str
    detoxified_image_key: str
    diagnosis_points: List[str] = field(default_factory=list)
    treatment_points: List[str] = field(default_factory=list)
    contamination_level: int = 50
    description: Optional[str] = None
    is_public: bool = True
    created_at: Optional[float] = None
    user_id: Optional[int] = None

    @property
    def shareable_url(self) -> str:
        return f"/deghib/{self.id}"
