"""
Template Matcher

Decides whether a screenshot matches a template using difference hashes.

Two modes:
- whole image: dHash of the full image vs template fingerprint,
  match if Hamming distance <= template.threshold
- checkpoints: every checkpoint region is cropped and hashed, and must be
  within distance 1 of its fingerprint (AND of all, first failure stops)

Matching never raises: crop, hash and distance failures all resolve to
"no match" so a caller can probe many templates in a loop.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from ..exceptions import CropOutOfBoundsError, DistanceComputationError
from ..utils.logger import log_match_trace
from .hashing import (
    HashLike,
    difference_hash,
    format_fingerprint,
    hash_distance,
    is_valid_fingerprint,
    parse_fingerprint,
)
from .imgutils import ImageLike, crop_image, to_image
from .schema import CHECKPOINT_MAX_DISTANCE, Checkpoint, OCRCrop, Template

logger = logging.getLogger(__name__)

WHOLE_IMAGE = "whole_image"
CHECKPOINTS = "checkpoints"

# Errors an image hash function may raise on odd inputs (mode, size, type)
_HASH_ERRORS = (TypeError, ValueError, OSError)


@dataclass
class CheckpointResult:
    """Outcome of one checkpoint comparison."""
    index: int
    crop: Optional[OCRCrop]
    expected: str
    actual: Optional[str] = None
    distance: Optional[int] = None
    matched: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "index": self.index,
            "crop": self.crop.rectangle() if self.crop else None,
            "expected": self.expected,
            "actual": self.actual,
            "distance": self.distance,
            "matched": self.matched,
            "error": self.error,
        }


@dataclass
class MatchTrace:
    """Diagnostic trace of a match decision."""
    template_title: str
    mode: str
    matched: bool = False
    threshold: Optional[int] = None
    distance: Optional[int] = None
    actual_hash: Optional[str] = None
    checkpoints: List[CheckpointResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def failed_checkpoint(self) -> Optional[CheckpointResult]:
        for result in self.checkpoints:
            if not result.matched:
                return result
        return None

    def to_dict(self) -> Dict:
        return {
            "template": self.template_title,
            "mode": self.mode,
            "matched": self.matched,
            "threshold": self.threshold,
            "distance": self.distance,
            "actual_hash": self.actual_hash,
            "checkpoints": [c.to_dict() for c in self.checkpoints],
            "error": self.error,
        }


class TemplateMatcher:
    """
    Matches images against templates.

    The crop and hash primitives are injectable; by default images are
    cropped with crop_image() and hashed with a 64-bit dHash.
    """

    def __init__(
        self,
        hash_func: Optional[Callable] = None,
        crop_func: Optional[Callable] = None,
        trace_log_file: Optional[str] = None
    ):
        """
        Args:
            hash_func: image -> hash (ImageHash or int)
            crop_func: (image, OCRCrop) -> sub-image, raising CropOutOfBoundsError
            trace_log_file: optional CSV file receiving one row per decision
        """
        self.hash_func = hash_func or difference_hash
        self.crop_func = crop_func or crop_image
        self.trace_log_file = trace_log_file

    def matches(self, image: ImageLike, template: Template, image_name: str = "") -> bool:
        """Return True if the image matches the template."""
        return self.explain(image, template, image_name=image_name).matched

    def match(self, image_hash: HashLike, template: Template) -> bool:
        """Whole-image decision for an already computed hash."""
        distance = self._template_distance(image_hash, template)
        return distance is not None and distance <= template.threshold

    def explain(
        self,
        image: ImageLike,
        template: Template,
        image_name: str = ""
    ) -> MatchTrace:
        """
        Same decision as matches(), with per-step diagnostics.

        Args:
            image: candidate image
            template: template to test
            image_name: label used in the CSV trace log
        """
        if template.uses_checkpoints:
            trace = self._explain_checkpoints(image, template)
        else:
            trace = self._explain_whole_image(image, template)

        if self.trace_log_file:
            try:
                log_match_trace(image_name, trace, log_file=self.trace_log_file)
            except OSError as e:
                logger.warning(f"Failed to write match trace to {self.trace_log_file}: {e}")

        return trace

    def find_match(
        self,
        image: ImageLike,
        templates: Sequence[Template],
        image_name: str = ""
    ) -> Optional[Template]:
        """Return the first template (in order) that matches, or None."""
        for template in templates:
            if self.matches(image, template, image_name=image_name):
                return template
        return None

    def find_all(
        self,
        image: ImageLike,
        templates: Sequence[Template],
        workers: int = 1,
        image_name: str = ""
    ) -> List[Template]:
        """
        Return every matching template, in input order.

        Args:
            image: candidate image
            templates: templates to probe
            workers: thread pool size; 1 evaluates sequentially
            image_name: label used in the CSV trace log
        """
        if workers > 1 and len(templates) > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                results = list(executor.map(lambda t: self.matches(image, t, image_name=image_name), templates))
        else:
            results = [self.matches(image, t, image_name=image_name) for t in templates]

        return [t for t, matched in zip(templates, results) if matched]

    def _template_distance(self, image_hash: HashLike, template: Template) -> Optional[int]:
        if not is_valid_fingerprint(template.fingerprint):
            logger.debug(f"Template '{template.title}' has malformed fingerprint {template.fingerprint!r}")
            return None

        try:
            distance = hash_distance(parse_fingerprint(template.fingerprint), image_hash)
        except DistanceComputationError as e:
            # this template is no go
            logger.debug(f"Template '{template.title}': {e}")
            return None

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"hash: {format_fingerprint(image_hash)}, distance: {distance}")
        return distance

    def _explain_whole_image(self, image: ImageLike, template: Template) -> MatchTrace:
        trace = MatchTrace(template_title=template.title, mode=WHOLE_IMAGE, threshold=template.threshold)

        try:
            image_hash = self.hash_func(to_image(image))
        except _HASH_ERRORS as e:
            trace.error = f"hash failed: {e}"
            logger.debug(f"Cannot hash image for '{template.title}': {e}")
            return trace

        trace.actual_hash = format_fingerprint(image_hash)
        trace.distance = self._template_distance(image_hash, template)
        if trace.distance is None:
            trace.error = "fingerprint not comparable"
            return trace

        trace.matched = trace.distance <= template.threshold
        return trace

    def _explain_checkpoints(self, image: ImageLike, template: Template) -> MatchTrace:
        trace = MatchTrace(template_title=template.title, mode=CHECKPOINTS)

        try:
            img = to_image(image)
        except TypeError as e:
            trace.error = str(e)
            return trace

        for index, checkpoint in enumerate(template.checkpoints):
            result = self._check(img, index, checkpoint)
            trace.checkpoints.append(result)
            if not result.matched:
                logger.debug(
                    f"Area {checkpoint.crop.rectangle() if checkpoint.crop else None} "
                    f"doesn't match expected hash: {checkpoint.fingerprint} ({result.error or result.distance})"
                )
                return trace

        trace.matched = True
        return trace

    def _check(self, image, index: int, checkpoint: Checkpoint) -> CheckpointResult:
        result = CheckpointResult(index=index, crop=checkpoint.crop, expected=checkpoint.fingerprint)

        if checkpoint.crop is None:
            result.error = "no crop region"
            return result
        if not is_valid_fingerprint(checkpoint.fingerprint):
            result.error = "malformed fingerprint"
            return result

        try:
            region = self.crop_func(image, checkpoint.crop)
        except CropOutOfBoundsError as e:
            result.error = str(e)
            return result

        try:
            region_hash = self.hash_func(region)
        except _HASH_ERRORS as e:
            result.error = f"hash failed: {e}"
            return result

        result.actual = format_fingerprint(region_hash)
        try:
            result.distance = hash_distance(parse_fingerprint(checkpoint.fingerprint), region_hash)
        except DistanceComputationError as e:
            result.error = str(e)
            return result

        if result.distance > 0:
            logger.debug(
                f"Expected hash: {checkpoint.fingerprint}, real hash: {result.actual}, distance: {result.distance}"
            )

        result.matched = result.distance <= CHECKPOINT_MAX_DISTANCE
        return result


def match_template(
    image: ImageLike,
    templates: Sequence[Template],
    matcher: Optional[TemplateMatcher] = None,
    image_name: str = ""
) -> Optional[Template]:
    """
    Convenience function: first template the image matches.

    Args:
        image: candidate image
        templates: templates to probe, in priority order
        matcher: optional preconfigured matcher
        image_name: label used in the CSV trace log

    Returns:
        Matching Template or None
    """
    matcher = matcher or TemplateMatcher()
    return matcher.find_match(image, templates, image_name=image_name)
