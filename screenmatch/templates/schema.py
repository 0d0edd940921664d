"""
Template Schema

Pydantic models for OCR templates:
- Template: one recognizable screen layout
- Checkpoint: a sub-region that must match for the template to match
- FieldSchema: OCR instructions for one named field
- TableField: column descriptor for tabular output
- OCRCrop: crop rectangle

Wire format notes:
- OCRCrop serializes as [x, y, w, h]
- TableField serializes as [title, field, bold, color]
- Everything else is a keyed object; empty/zero values are omitted on
  encode and absent keys decode to empty/zero values.
"""

import json
import math
from typing import Any, Dict, List, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    ValidationError,
    field_validator,
    model_serializer,
    model_validator,
)

from ..exceptions import DeserializationError
from .hashing import decode_fingerprint, is_valid_fingerprint

# Checkpoint regions are small and pixel-stable; not configurable.
CHECKPOINT_MAX_DISTANCE = 1

CROP_FIELDS = ("x", "y", "w", "h")
TABLE_FIELDS = ("title", "field", "bold", "color")


def _is_empty(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, (str, list, dict, tuple)):
        return len(value) == 0
    return isinstance(value, (int, float)) and value == 0


class _KeyedModel(BaseModel):
    """Keyed-object base: nulls decode as absent, empties are omitted on encode."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data

    @model_serializer(mode="wrap")
    def _omit_empty(self, handler):
        data = handler(self)
        return {k: v for k, v in data.items() if not _is_empty(v)}


class OCRCrop(BaseModel):
    """Crop rectangle: origin (x, y) and extent (w, h)."""

    model_config = ConfigDict(frozen=True)

    x: int = 0
    y: int = 0
    w: int = 0
    h: int = 0

    @model_validator(mode="before")
    @classmethod
    def _from_positional(cls, data: Any) -> Any:
        if not isinstance(data, (list, tuple)):
            return data
        if len(data) < 4:
            raise ValueError(f"crop needs 4 elements [x, y, w, h], got {len(data)}")

        values = {}
        for name, value in zip(CROP_FIELDS, data[:4]):
            # JSON numbers may arrive as floats; truncate toward zero
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"crop element '{name}' must be a number, got {value!r}")
            if isinstance(value, float) and not math.isfinite(value):
                raise ValueError(f"crop element '{name}' must be finite, got {value!r}")
            values[name] = int(value)
        return values

    @model_serializer
    def _to_positional(self) -> List[int]:
        return [self.x, self.y, self.w, self.h]

    def rectangle(self) -> tuple:
        """PIL-style box (left, upper, right, lower)."""
        return (self.x, self.y, self.x + self.w, self.y + self.h)


class TableField(BaseModel):
    """Column descriptor for tabular output of extracted fields."""

    model_config = ConfigDict(frozen=True)

    title: StrictStr = ""
    field: StrictStr = ""
    bold: StrictBool = False
    color: StrictStr = ""

    @model_validator(mode="before")
    @classmethod
    def _from_positional(cls, data: Any) -> Any:
        if not isinstance(data, (list, tuple)):
            return data
        if len(data) < 4:
            raise ValueError(f"table field needs 4 elements [title, field, bold, color], got {len(data)}")
        return dict(zip(TABLE_FIELDS, data[:4]))

    @model_serializer
    def _to_positional(self) -> List[Any]:
        return [self.title, self.field, self.bold, self.color]


class FieldSchema(_KeyedModel):
    """OCR extraction instructions for one named field."""

    callback: List[StrictStr] = Field(default_factory=list)
    languages: List[StrictStr] = Field(default_factory=list, alias="lang")
    oem: StrictInt = 0
    psm: StrictInt = 0
    crop: Optional[OCRCrop] = None
    # Either all digits or all strings; mixed lists are rejected
    allowlist: Union[List[StrictInt], List[StrictStr]] = Field(default_factory=list)

    @field_validator("callback", mode="before")
    @classmethod
    def _wrap_single_callback(cls, v):
        if isinstance(v, str):
            return [v]
        return v

    def allowed_characters(self) -> str:
        """Allowlist joined into a single character string ("" if unrestricted)."""
        return "".join(str(item) for item in self.allowlist)

    def language_string(self) -> str:
        return "+".join(self.languages)

    def tesseract_config(self) -> str:
        """Render OEM/PSM/allowlist as a tesseract config string."""
        parts = [f"--oem {self.oem}", f"--psm {self.psm}"]
        allowed = self.allowed_characters()
        if allowed:
            parts.append(f"-c tessedit_char_whitelist={allowed}")
        return " ".join(parts)


def number_field(crop: Optional[OCRCrop] = None) -> FieldSchema:
    """Digits-only, single-line field."""
    return FieldSchema(
        languages=["eng"],
        callback=[],
        allowlist=list(range(10)),
        psm=7,
        oem=1,
        crop=crop,
    )


def text_field(crop: Optional[OCRCrop] = None, *languages: str) -> FieldSchema:
    """Single-line free text field in the given languages."""
    return FieldSchema(
        languages=list(languages),
        callback=[],
        psm=7,
        oem=1,
        crop=crop,
    )


class Checkpoint(_KeyedModel):
    """Sub-region of a template with its own fingerprint."""

    crop: Optional[OCRCrop] = None
    fingerprint: StrictStr = ""

    @property
    def hash(self) -> int:
        return decode_fingerprint(self.fingerprint)


class Template(_KeyedModel):
    """
    Declarative description of a recognizable screen layout.

    If checkpoints are present, they replace whole-image matching: the
    fingerprint and threshold are then ignored by the matcher.
    """

    title: StrictStr = ""
    version: StrictStr = ""
    author: StrictStr = ""
    width: StrictInt = 0
    height: StrictInt = 0
    ocr_schema: Dict[str, FieldSchema] = Field(default_factory=dict)
    fingerprint: StrictStr = ""
    threshold: StrictInt = 0
    table: List[TableField] = Field(default_factory=list)
    checkpoints: List[Checkpoint] = Field(default_factory=list)

    @property
    def hash(self) -> int:
        """Whole-image fingerprint value (0 when the string is malformed)."""
        return decode_fingerprint(self.fingerprint)

    @property
    def uses_checkpoints(self) -> bool:
        return len(self.checkpoints) > 0

    def invalid_fingerprints(self) -> List[str]:
        """Describe every fingerprint the matcher would have to reject."""
        problems = []
        if not self.uses_checkpoints and not is_valid_fingerprint(self.fingerprint):
            problems.append(f"fingerprint {self.fingerprint!r}")
        for i, checkpoint in enumerate(self.checkpoints):
            if not is_valid_fingerprint(checkpoint.fingerprint):
                problems.append(f"checkpoints[{i}].fingerprint {checkpoint.fingerprint!r}")
        return problems

    def to_dict(self) -> Dict:
        """Encode to the wire representation."""
        return self.model_dump(by_alias=True, mode="json")

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: Any) -> "Template":
        """
        Decode a template document.

        Raises:
            DeserializationError: if the document shape is wrong
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise DeserializationError(
                f"Malformed template document ({e.error_count()} errors)",
                component="schema",
                original_error=e,
            ) from e

    @classmethod
    def from_json(cls, text: Union[str, bytes]) -> "Template":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise DeserializationError("Template is not valid JSON", component="schema", original_error=e) from e
        return cls.from_dict(data)
