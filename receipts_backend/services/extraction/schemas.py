"""
Receipt output schema registry.

The default schema is what the extraction prompt asks the provider to return.
It is generated from field specs so the prompt, the JSON schema sent to the
provider and the bounding-box handling all agree on field names.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

BOUNDING_BOX_FIELD = "boundingBox"
BOUNDING_BOX_SCALE = 1000


@dataclass(frozen=True)
class FieldSpec:
    """Specification for a single extraction field."""
    name: str
    json_type: str  # string, number, array, object
    title: str
    description: Optional[str] = None
    required: bool = False
    items: Optional[Dict[str, Any]] = None
    extra: Optional[Dict[str, Any]] = None

    def to_json_schema(self) -> Dict[str, Any]:
        prop: Dict[str, Any] = {"type": self.json_type, "title": self.title}
        if self.description:
            prop["description"] = self.description
        if self.items is not None:
            prop["items"] = self.items
        if self.extra:
            prop.update(self.extra)
        return prop


RECEIPT_FIELDS: Sequence[FieldSpec] = (
    FieldSpec(name="merchantName", json_type="string", title="Merchant", required=True),
    FieldSpec(name="transactionDate", json_type="string", title="Date"),
    FieldSpec(name="totalAmount", json_type="number", title="Total", required=True),
    FieldSpec(name="currency", json_type="string", title="Currency"),
    FieldSpec(name="category", json_type="string", title="Category", required=True),
    FieldSpec(
        name="items",
        json_type="array",
        title="Line Items",
        items={
            "type": "object",
            "properties": {
                "description": {"type": "string"},
                "quantity": {"type": "number"},
                "price": {"type": "number"},
            },
        },
    ),
    FieldSpec(
        name=BOUNDING_BOX_FIELD,
        json_type="array",
        title="Bounding Box",
        description=(
            "Receipt bounding box as [ymin, xmin, ymax, xmax] in 0-1000 normalized "
            "coordinates, or null if not detected"
        ),
        items={"type": "number"},
        extra={"minItems": 4, "maxItems": 4},
    ),
)


def build_output_schema(fields: Sequence[FieldSpec] = RECEIPT_FIELDS) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {f.name: f.to_json_schema() for f in fields},
        "required": [f.name for f in fields if f.required],
    }


DEFAULT_OUTPUT_SCHEMA = json.dumps(build_output_schema(), indent=2)

DEFAULT_SYSTEM_PROMPT = """Analyze this receipt image and extract the details according to the provided JSON schema.
Ensure all numeric values are numbers, and dates are in YYYY-MM-DD format.

Additionally, detect the receipt area in the image and return its bounding box in normalized coordinates (0-1000 scale).
The bounding box should be returned as [ymin, xmin, ymax, xmax] where:
- ymin: top edge (0 = top of image, 1000 = bottom)
- xmin: left edge (0 = left of image, 1000 = right)
- ymax: bottom edge
- xmax: right edge

If the receipt fills the entire image or no distinct receipt boundary is detected, return null for boundingBox."""


def is_valid_bounding_box(value: Any) -> bool:
    if not isinstance(value, (list, tuple)) or len(value) != 4:
        return False
    for v in value:
        # bool is an int subclass; reject it explicitly
        if isinstance(v, bool) or not isinstance(v, (int, float)) or v != v:
            return False
        if v < 0 or v > BOUNDING_BOX_SCALE:
            return False
    ymin, xmin, ymax, xmax = value
    return ymin < ymax and xmin < xmax


def parse_bounding_box(value: Any) -> Optional[List[float]]:
    if value is None:
        return None
    if is_valid_bounding_box(value):
        return [float(v) for v in value]
    return None
