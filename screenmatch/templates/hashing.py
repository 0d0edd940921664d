"""
Perceptual Hashing

Difference-hash (dHash) helpers for template matching:
- Compute a 64-bit dHash for an image (via imagehash)
- Decode/encode fingerprint hex strings
- Hamming distance between two hashes

Fingerprints are written by template authors as hex strings
(e.g. "f0e4c2d8a8b0b0f0"). A fingerprint is a 64-bit unsigned value;
bit 63 is the top-left gradient of the 9x8 grayscale thumbnail.
"""

import re
import logging
from typing import Union

import imagehash
from PIL import Image

from ..exceptions import DistanceComputationError, HashDecodeError

logger = logging.getLogger(__name__)

HASH_SIZE = 8
HASH_BITS = HASH_SIZE * HASH_SIZE
MAX_HASH_VALUE = (1 << HASH_BITS) - 1

_HEX_PATTERN = re.compile(r'^[0-9a-fA-F]+$')

HashLike = Union[int, imagehash.ImageHash]


def parse_fingerprint(text: str) -> int:
    """
    Decode a fingerprint hex string into a 64-bit unsigned value.

    Raises:
        HashDecodeError: if the string is empty, contains non-hex
            characters or does not fit in 64 bits
    """
    if not isinstance(text, str) or not _HEX_PATTERN.match(text):
        raise HashDecodeError(f"Invalid fingerprint {text!r}: not a hex string", component="hashing")

    value = int(text, 16)
    if value > MAX_HASH_VALUE:
        raise HashDecodeError(f"Invalid fingerprint {text!r}: exceeds {HASH_BITS} bits", component="hashing")
    return value


def decode_fingerprint(text: str) -> int:
    """
    Lenient fingerprint decode.

    Malformed strings decode to 0 instead of raising. Callers that need
    to know whether the value is real should check is_valid_fingerprint().
    """
    try:
        return parse_fingerprint(text)
    except HashDecodeError:
        return 0


def is_valid_fingerprint(text: str) -> bool:
    """Check whether a fingerprint string decodes cleanly."""
    try:
        parse_fingerprint(text)
    except HashDecodeError:
        return False
    return True


def format_fingerprint(value: HashLike) -> str:
    """Format a hash as the 16-char lowercase hex used in template documents."""
    if isinstance(value, imagehash.ImageHash):
        value = hash_to_int(value)
    return f"{value:0{HASH_BITS // 4}x}"


def hash_from_int(value: int) -> imagehash.ImageHash:
    """Build a 64-bit ImageHash from its integer value."""
    return imagehash.hex_to_hash(format_fingerprint(value))


def hash_to_int(image_hash: imagehash.ImageHash) -> int:
    return int(str(image_hash), 16)


def difference_hash(image: Image.Image) -> imagehash.ImageHash:
    """Compute the 64-bit difference hash of an image."""
    return imagehash.dhash(image, hash_size=HASH_SIZE)


def hash_distance(first: HashLike, second: HashLike) -> int:
    """
    Hamming distance between two hashes.

    Integers are treated as 64-bit dHash values.

    Raises:
        DistanceComputationError: if the hashes have different shapes
    """
    if isinstance(first, int) and isinstance(second, int):
        return bin((first ^ second) & MAX_HASH_VALUE).count('1')

    if isinstance(first, int):
        first = hash_from_int(first)
    if isinstance(second, int):
        second = hash_from_int(second)

    try:
        return int(first - second)
    except TypeError as e:
        raise DistanceComputationError(
            f"Cannot compare hashes {first} and {second}",
            component="hashing",
            original_error=e,
        ) from e
