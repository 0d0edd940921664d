"""
Image helpers for template matching.

PIL's Image.crop pads out-of-range boxes with black pixels, which would
hash to a plausible-looking value. crop_image() checks bounds first and
raises CropOutOfBoundsError instead.
"""

import logging
from typing import Dict, Union

import numpy as np
from PIL import Image

from ..exceptions import CropOutOfBoundsError
from .schema import OCRCrop, Template

logger = logging.getLogger(__name__)

ImageLike = Union[Image.Image, np.ndarray]


def to_image(image: ImageLike) -> Image.Image:
    """Accept a PIL image or a decoded numpy array (HxW or HxWxC)."""
    if isinstance(image, Image.Image):
        return image
    if isinstance(image, np.ndarray):
        return Image.fromarray(image)
    raise TypeError(f"Unsupported image type: {type(image).__name__}")


def crop_image(image: ImageLike, crop: OCRCrop) -> Image.Image:
    """
    Return the sub-image covered by crop.

    Raises:
        CropOutOfBoundsError: if the rectangle is empty or not fully inside the image
    """
    img = to_image(image)
    left, upper, right, lower = crop.rectangle()

    if crop.w <= 0 or crop.h <= 0:
        raise CropOutOfBoundsError(f"Empty crop region {crop.rectangle()}", component="imgutils")
    if left < 0 or upper < 0 or right > img.width or lower > img.height:
        raise CropOutOfBoundsError(
            f"Crop region {crop.rectangle()} outside image {img.width}x{img.height}",
            component="imgutils",
        )

    return img.crop((left, upper, right, lower))


def crop_fields(image: ImageLike, template: Template) -> Dict[str, Image.Image]:
    """
    Crop every OCR field region of a matched template.

    Fields without a crop get the whole image. Fields whose crop does not
    fit are skipped with a warning.
    """
    img = to_image(image)
    regions = {}
    for name, schema in template.ocr_schema.items():
        if schema.crop is None:
            regions[name] = img
            continue
        try:
            regions[name] = crop_image(img, schema.crop)
        except CropOutOfBoundsError as e:
            logger.warning(f"Skipping field '{name}' of '{template.title}': {e}")
    return regions
