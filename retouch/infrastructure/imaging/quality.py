import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

# IJG reference tables (libjpeg jcparam.c), natural order
STD_LUMINANCE_QUANT = [
    16, 11, 10, 16, 24, 40, 51, 61,
    12, 12, 14, 19, 26, 58, 60, 55,
    14, 13, 16, 24, 40, 57, 69, 56,
    14, 17, 22, 29, 51, 87, 80, 62,
    18, 22, 37, 56, 68, 109, 103, 77,
    24, 35, 55, 64, 81, 104, 113, 92,
    49, 64, 78, 87, 103, 121, 120, 101,
    72, 92, 95, 98, 112, 100, 103, 99,
]
STD_CHROMINANCE_QUANT = [
    17, 18, 24, 47, 99, 99, 99, 99,
    18, 21, 26, 66, 99, 99, 99, 99,
    24, 26, 56, 99, 99, 99, 99, 99,
    47, 66, 99, 99, 99, 99, 99, 99,
    99, 99, 99, 99, 99, 99, 99, 99,
    99, 99, 99, 99, 99, 99, 99, 99,
    99, 99, 99, 99, 99, 99, 99, 99,
    99, 99, 99, 99, 99, 99, 99, 99,
]


def estimate_jpeg_quality(tables: Dict[int, List[int]]) -> Optional[int]:
    """Invert the IJG quality scaling from a decoder's quantization tables."""
    if not tables:
        return None
    references = [STD_LUMINANCE_QUANT, STD_CHROMINANCE_QUANT]
    estimates = []
    for index, reference in enumerate(references):
        table = tables.get(index)
        if not table or len(table) != 64:
            continue
        scale = 100.0 * sum(table) / sum(reference)
        if scale <= 0:
            continue
        quality = (200.0 - scale) / 2.0 if scale <= 100.0 else 5000.0 / scale
        estimates.append(quality)
    if not estimates:
        return None
    return max(1, min(100, int(round(sum(estimates) / len(estimates)))))


@dataclass
class QualityMatch:
    data: bytes
    quality: int
    attempts: int
    within_tolerance: bool


def within_tolerance(size: int, desired: int, tolerance: float) -> bool:
    return desired > 0 and abs(size - desired) / desired <= tolerance


def match_quality(
    encode: Callable[[int], bytes],
    start_quality: int,
    desired_size: Optional[int],
    tolerance: float = 0.10,
    max_attempts: int = 6,
) -> QualityMatch:
    """Bounded search for the quality whose output size lands near ``desired_size``.

    Bisects the quality range around ``start_quality``: output too big lowers the
    ceiling, too small raises the floor. The closest result seen is returned
    when no attempt lands inside the tolerance band.
    """
    quality = max(1, min(100, int(start_quality)))
    first = encode(quality)
    if not desired_size or desired_size <= 0:
        return QualityMatch(first, quality, 1, True)

    best = QualityMatch(first, quality, 1, within_tolerance(len(first), desired_size, tolerance))
    if best.within_tolerance:
        return best

    low, high = 1, 100
    tried = {quality: len(first)}
    attempts = 1
    while attempts < max_attempts:
        if tried[quality] > desired_size:
            high = quality - 1
        else:
            low = quality + 1
        if low > high:
            break
        quality = (low + high) // 2
        if quality in tried:
            break
        data = encode(quality)
        attempts += 1
        tried[quality] = len(data)
        logger.debug(f"Quality {quality}: {len(data)} bytes (target {desired_size})")
        if abs(len(data) - desired_size) < abs(len(best.data) - desired_size):
            best = QualityMatch(data, quality, attempts, False)
        if within_tolerance(len(data), desired_size, tolerance):
            return QualityMatch(data, quality, attempts, True)

    best.attempts = attempts
    logger.info(
        f"Quality search settled on q={best.quality} ({len(best.data)} bytes, "
        f"target {desired_size}) after {attempts} attempt(s)"
    )
    return best
