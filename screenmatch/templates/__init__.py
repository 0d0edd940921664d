"""
Screen Template Matching Module

Identifies which known screen layout a screenshot corresponds to using
difference hashes, and carries the OCR extraction instructions for it.
Supports:
- Whole-image fingerprint matching with a per-template threshold
- Checkpoint matching (every declared sub-region must match)
- JSON / YAML template documents

Usage:
    from screenmatch.templates import load_template, TemplateMatcher
    template = load_template("resources/templates/profile.json")
    if TemplateMatcher().matches(image, template):
        regions = crop_fields(image, template)

    # Probe a directory of templates
    from screenmatch.templates import get_registry
    name = get_registry().match(image)
"""

from .hashing import (
    decode_fingerprint,
    difference_hash,
    format_fingerprint,
    hash_distance,
    is_valid_fingerprint,
    parse_fingerprint,
)
from .schema import (
    CHECKPOINT_MAX_DISTANCE,
    Checkpoint,
    FieldSchema,
    OCRCrop,
    TableField,
    Template,
    number_field,
    text_field,
)
from .imgutils import crop_fields, crop_image
from .matcher import CheckpointResult, MatchTrace, TemplateMatcher, match_template
from .registry import (
    TemplateRegistry,
    dump_template,
    get_registry,
    load_template,
    parse_template,
    reset_registry,
)

__all__ = [
    "decode_fingerprint",
    "difference_hash",
    "format_fingerprint",
    "hash_distance",
    "is_valid_fingerprint",
    "parse_fingerprint",
    "CHECKPOINT_MAX_DISTANCE",
    "Checkpoint",
    "FieldSchema",
    "OCRCrop",
    "TableField",
    "Template",
    "number_field",
    "text_field",
    "crop_fields",
    "crop_image",
    "CheckpointResult",
    "MatchTrace",
    "TemplateMatcher",
    "match_template",
    "TemplateRegistry",
    "dump_template",
    "get_registry",
    "load_template",
    "parse_template",
    "reset_registry",
]
