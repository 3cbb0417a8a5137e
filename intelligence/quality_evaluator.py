"""Deterministic quality scoring for generated content variants."""

from typing import Dict, Tuple

from loguru import logger

from config.constants import QUALITY_BANDS, QualityBands
from core.models import ContentVariants


class QualityEvaluator:
    """Scores the three length variants against their target character bands."""

    def __init__(self, bands: QualityBands = QUALITY_BANDS) -> None:
        """Initialize evaluator with band configuration.

        Args:
            bands: Base score, per-band bonus and target ranges.
        """
        self.bands = bands

    def band_checks(self, variants: ContentVariants) -> Dict[str, bool]:
        """Report which variants fall inside their target band.

        Bands are inclusive on both ends.
        """
        ranges: Dict[str, Tuple[int, int]] = {
            "short": self.bands.SHORT_RANGE,
            "medium": self.bands.MEDIUM_RANGE,
            "long": self.bands.LONG_RANGE,
        }
        checks = {}
        for name, (low, high) in ranges.items():
            length = len(getattr(variants, name))
            checks[name] = low <= length <= high
        return checks

    def score(self, variants: ContentVariants) -> float:
        """Compute the quality score.

        Args:
            variants: Generated short/medium/long content.

        Returns:
            Score in [BASE_SCORE, MAX_SCORE].
        """
        checks = self.band_checks(variants)
        raw = self.bands.BASE_SCORE + self.bands.BAND_BONUS * sum(checks.values())
        score = round(min(raw, self.bands.MAX_SCORE), 4)

        logger.debug(f"Quality score {score} (bands matched: {[k for k, v in checks.items() if v]})")
        return score


def calculate_quality_score(variants: ContentVariants) -> float:
    return QualityEvaluator().score(variants)


__all__ = ["QualityEvaluator", "calculate_quality_score"]
