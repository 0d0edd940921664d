"""
Tests for template schema (de)serialization.

Covers:
1. Positional encodings for crops and table columns
2. Keyed objects with omit-empty encoding
3. Field schema presets and OCR parameter rendering
4. Round-trips and structural error reporting
"""

import json

import pytest
from pydantic import ValidationError

from screenmatch.exceptions import DeserializationError
from screenmatch.templates.schema import (
    CHECKPOINT_MAX_DISTANCE,
    Checkpoint,
    FieldSchema,
    OCRCrop,
    TableField,
    Template,
    number_field,
    text_field,
)


PROFILE_TEMPLATE = {
    "title": "Governor profile",
    "version": "1",
    "author": "rok",
    "width": 1280,
    "height": 720,
    "fingerprint": "f0e4c2d8a8b0b0f0",
    "threshold": 5,
    "ocr_schema": {
        "power": {"lang": ["eng"], "oem": 1, "psm": 7, "crop": [100, 200, 150, 30], "allowlist": [0, 1, 2, 3, 4, 5, 6, 7, 8, 9]},
        "name": {"lang": ["eng", "kor"], "oem": 1, "psm": 7, "crop": [400.0, 80.0, 300.0, 40.0], "callback": "trim"},
    },
    "table": [
        ["Name", "name", True, "#FFFFFF"],
        ["Power", "power", False, "#00FF00"],
    ],
    "checkpoints": [
        {"crop": [10, 10, 64, 32], "fingerprint": "0000000000000000"},
    ],
}


class TestCrop:
    """Tests for positional crop rectangles."""

    def test_decode_positional(self):
        """[x, y, w, h] decodes in order."""
        crop = OCRCrop.model_validate([1, 2, 3, 4])
        assert (crop.x, crop.y, crop.w, crop.h) == (1, 2, 3, 4)

    def test_decode_truncates_floats(self):
        """JSON numbers arriving as floats are truncated toward zero."""
        crop = OCRCrop.model_validate([10.9, 20.0, 30.5, 40.999])
        assert (crop.x, crop.y, crop.w, crop.h) == (10, 20, 30, 40)

    def test_encode_positional(self):
        crop = OCRCrop(x=5, y=6, w=7, h=8)
        assert crop.model_dump() == [5, 6, 7, 8]

    def test_extra_elements_ignored(self):
        crop = OCRCrop.model_validate([1, 2, 3, 4, 99])
        assert crop.model_dump() == [1, 2, 3, 4]

    def test_too_few_elements_rejected(self):
        with pytest.raises(ValidationError):
            OCRCrop.model_validate([1, 2, 3])

    @pytest.mark.parametrize("bad", [[1, "2", 3, 4], [True, 2, 3, 4], [1, 2, None, 4]])
    def test_non_numeric_rejected(self, bad):
        with pytest.raises(ValidationError):
            OCRCrop.model_validate(bad)

    def test_rectangle(self):
        """rectangle() returns a PIL box (left, upper, right, lower)."""
        assert OCRCrop(x=10, y=20, w=30, h=40).rectangle() == (10, 20, 40, 60)


class TestTableField:
    """Tests for positional table column descriptors."""

    def test_decode_and_encode(self):
        """Decoding then encoding reproduces the identical array."""
        raw = ["Name", "player_name", True, "#FFFFFF"]
        column = TableField.model_validate(raw)

        assert column.title == "Name"
        assert column.field == "player_name"
        assert column.bold is True
        assert column.color == "#FFFFFF"
        assert column.model_dump() == raw

    def test_too_few_elements_rejected(self):
        with pytest.raises(ValidationError):
            TableField.model_validate(["Name", "player_name", True])

    def test_wrong_bold_type_rejected(self):
        with pytest.raises(ValidationError):
            TableField.model_validate(["Name", "player_name", "yes", "#FFFFFF"])

    def test_wrong_color_type_rejected(self):
        with pytest.raises(ValidationError):
            TableField.model_validate(["Name", "player_name", False, 255])


class TestFieldSchema:
    """Tests for OCR field schemas and presets."""

    def test_number_field_preset(self):
        crop = OCRCrop(x=1, y=2, w=3, h=4)
        field = number_field(crop)

        assert field.languages == ["eng"]
        assert field.allowlist == list(range(10))
        assert field.psm == 7
        assert field.oem == 1
        assert field.crop == crop
        assert field.callback == []

    def test_text_field_preset(self):
        field = text_field(None, "eng", "kor")

        assert field.languages == ["eng", "kor"]
        assert field.allowlist == []
        assert field.psm == 7
        assert field.oem == 1
        assert field.crop is None

    def test_tesseract_config(self):
        """OCR parameters render as a tesseract config string."""
        assert number_field().tesseract_config() == "--oem 1 --psm 7 -c tessedit_char_whitelist=0123456789"
        assert text_field(None, "eng").tesseract_config() == "--oem 1 --psm 7"
        assert text_field(None, "eng", "chi_sim").language_string() == "eng+chi_sim"

    def test_wire_names(self):
        field = FieldSchema.model_validate({"lang": ["eng"], "psm": 6})
        assert field.languages == ["eng"]
        assert field.model_dump(by_alias=True) == {"lang": ["eng"], "psm": 6}

    def test_string_allowlist(self):
        field = FieldSchema.model_validate({"allowlist": ["A", "B", "C"]})
        assert field.allowed_characters() == "ABC"

    def test_mixed_allowlist_rejected(self):
        with pytest.raises(ValidationError):
            FieldSchema.model_validate({"allowlist": [1, "A"]})

    def test_single_callback_wrapped(self):
        field = FieldSchema.model_validate({"callback": "trim"})
        assert field.callback == ["trim"]


class TestTemplate:
    """Tests for whole template documents."""

    def test_from_dict(self):
        template = Template.from_dict(PROFILE_TEMPLATE)

        assert template.title == "Governor profile"
        assert template.width == 1280
        assert template.threshold == 5
        assert template.ocr_schema["name"].crop == OCRCrop(x=400, y=80, w=300, h=40)
        assert template.ocr_schema["name"].callback == ["trim"]
        assert template.table[0].bold is True
        assert template.checkpoints[0].crop.rectangle() == (10, 10, 74, 42)
        assert template.uses_checkpoints is True

    def test_absent_fields_decode_to_zero_values(self):
        template = Template.from_dict({})

        assert template.title == ""
        assert template.threshold == 0
        assert template.ocr_schema == {}
        assert template.table == []
        assert template.checkpoints == []
        assert template.uses_checkpoints is False

    def test_null_fields_decode_as_absent(self):
        template = Template.from_dict({"title": None, "checkpoints": [{"crop": None, "fingerprint": "00"}]})

        assert template.title == ""
        assert template.checkpoints[0].crop is None

    def test_unknown_fields_ignored(self):
        template = Template.from_dict({"title": "x", "comment": "not part of the format"})
        assert template.title == "x"

    def test_omit_empty_encoding(self):
        """Zero values are omitted; positional structures stay arrays."""
        template = Template(title="Alliance", threshold=0, table=[TableField(title="Name", field="name")])

        assert template.to_dict() == {
            "title": "Alliance",
            "table": [["Name", "name", False, ""]],
        }

    def test_round_trip(self):
        """Encoding then decoding yields an equal template."""
        original = Template.from_dict(PROFILE_TEMPLATE)
        restored = Template.from_json(original.to_json())

        assert restored == original
        assert json.loads(original.to_json())["table"][0] == ["Name", "name", True, "#FFFFFF"]

    def test_round_trip_presets(self):
        original = Template(
            title="Kills",
            fingerprint="00000000000000ff",
            threshold=3,
            ocr_schema={
                "kills": number_field(OCRCrop(x=0, y=0, w=50, h=20)),
                "name": text_field(OCRCrop(x=0, y=20, w=50, h=20), "eng"),
            },
            checkpoints=[Checkpoint(crop=OCRCrop(x=1, y=1, w=8, h=8), fingerprint="ff")],
        )
        assert Template.from_dict(original.to_dict()) == original

    def test_immutable(self):
        template = Template(title="x")
        with pytest.raises(ValidationError):
            template.title = "y"

    def test_wrong_type_raises_deserialization_error(self):
        with pytest.raises(DeserializationError):
            Template.from_dict({"threshold": "five"})

    def test_bad_table_raises_deserialization_error(self):
        with pytest.raises(DeserializationError):
            Template.from_dict({"table": [["Name", "name"]]})

    def test_bad_crop_raises_deserialization_error(self):
        with pytest.raises(DeserializationError):
            Template.from_dict({"checkpoints": [{"crop": [1, 2], "fingerprint": "00"}]})

    def test_invalid_json_raises_deserialization_error(self):
        with pytest.raises(DeserializationError):
            Template.from_json("{not json")

    def test_semantic_invariants_not_checked(self):
        """Negative thresholds and oversized crops are the caller's problem."""
        template = Template.from_dict({
            "width": 10,
            "height": 10,
            "threshold": -1,
            "checkpoints": [{"crop": [50, 50, 100, 100], "fingerprint": "00"}],
        })
        assert template.threshold == -1


class TestFingerprints:
    """Tests for fingerprint access on templates."""

    def test_hash_value(self):
        assert Template(fingerprint="00000000000000ff").hash == 0xFF
        assert Checkpoint(fingerprint="10").hash == 0x10

    def test_malformed_fingerprint_decodes_to_zero(self):
        """Invalid hex decodes to 0 without raising (lenient decode)."""
        assert Template(fingerprint="zz").hash == 0
        assert Checkpoint(fingerprint="zz").hash == 0

    def test_invalid_fingerprints_whole_image(self):
        assert Template(fingerprint="zz").invalid_fingerprints() == ["fingerprint 'zz'"]
        assert Template(fingerprint="").invalid_fingerprints() == ["fingerprint ''"]
        assert Template(fingerprint="0f").invalid_fingerprints() == []

    def test_invalid_fingerprints_checkpoints(self):
        """With checkpoints, the whole-image fingerprint is not required."""
        template = Template(checkpoints=[
            Checkpoint(crop=OCRCrop(x=0, y=0, w=8, h=8), fingerprint="00"),
            Checkpoint(crop=OCRCrop(x=8, y=0, w=8, h=8), fingerprint="xyz"),
        ])
        assert template.invalid_fingerprints() == ["checkpoints[1].fingerprint 'xyz'"]

    def test_checkpoint_limit(self):
        assert CHECKPOINT_MAX_DISTANCE == 1
