"""A dependency-free heuristic provider that simulates a scan analysis.

Nothing here inspects anatomy. The scan type and image quality are guessed
from global luminance statistics, and findings are drawn at random from
fixed per-modality catalogues.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime, timezone

from PIL import Image, ImageStat

from ..config import AppConfig
from ..errors import InvalidInput
from ..images import ScanImage
from ..schema import (
    AnalysisResult,
    FindingStatus,
    ImageQuality,
    Region,
    ScanType,
    Severity,
    SuspectedCondition,
    UrgencyLevel,
)
from .base import AnalysisProvider, CancelToken, ProviderInfo
from .registry import ProviderRegistry

logger = logging.getLogger(__name__)

SAMPLE_SIZE = (256, 256)
ABNORMAL_PROBABILITY = 0.6

LOCATIONS: dict[ScanType, tuple[str, ...]] = {
    ScanType.XRAY: (
        "Right upper lobe",
        "Left lower lobe",
        "Right costophrenic angle",
        "Cardiac silhouette",
    ),
    ScanType.MRI: (
        "Left frontal lobe",
        "Right temporal lobe",
        "Periventricular white matter",
        "Cerebellum",
    ),
    ScanType.CT: (
        "Right hepatic lobe",
        "Mediastinum",
        "Left kidney",
        "Pancreatic head",
    ),
    ScanType.ULTRASOUND: (
        "Gallbladder",
        "Right thyroid lobe",
        "Left ovary",
        "Common bile duct",
    ),
}

CONDITIONS: dict[ScanType, tuple[tuple[str, str], ...]] = {
    ScanType.XRAY: (
        ("Pulmonary nodule", "Rounded opacity that may represent a nodule or granuloma."),
        ("Consolidation", "Area of increased density suggestive of infection or inflammation."),
        ("Pleural effusion", "Blunting of the costophrenic angle consistent with fluid."),
    ),
    ScanType.MRI: (
        ("White matter hyperintensity", "Focal signal change in the white matter."),
        ("Space-occupying lesion", "Region of abnormal signal with possible mass effect."),
        ("Cerebral edema", "Diffuse signal change suggesting swelling of brain tissue."),
    ),
    ScanType.CT: (
        ("Hypodense lesion", "Low-attenuation focus that may represent a cyst or lesion."),
        ("Lymphadenopathy", "Enlarged lymph nodes beyond normal size criteria."),
        ("Renal calculus", "Hyperdense focus consistent with a kidney stone."),
    ),
    ScanType.ULTRASOUND: (
        ("Cholelithiasis", "Echogenic foci with posterior shadowing in the gallbladder."),
        ("Thyroid nodule", "Well-circumscribed nodule within the thyroid parenchyma."),
        ("Simple cyst", "Anechoic structure with posterior acoustic enhancement."),
    ),
}

REGION_DESCRIPTIONS = {
    Severity.LOW: "Subtle change of uncertain significance.",
    Severity.MEDIUM: "Noticeable abnormality that warrants follow-up.",
    Severity.HIGH: "Prominent abnormality requiring prompt review.",
}

RECOMMENDATIONS = {
    UrgencyLevel.LOW: (
        "No significant abnormalities detected. Routine follow-up as clinically indicated."
    ),
    UrgencyLevel.MEDIUM: (
        "Findings warrant clinical correlation. Follow-up imaging and specialist review "
        "are recommended."
    ),
    UrgencyLevel.HIGH: (
        "Potentially significant findings detected. Urgent review by a radiologist is "
        "recommended."
    ),
}


def measure_luminance(image: Image.Image) -> tuple[float, float]:
    """Return ``(mean_brightness, contrast)`` of a downsampled luminance buffer.

    Brightness is on the 0-255 scale; contrast is ``(max - min) / 255``.
    """
    sample = image.convert("L")
    sample.thumbnail(SAMPLE_SIZE)
    stat = ImageStat.Stat(sample)
    low, high = stat.extrema[0]
    return float(stat.mean[0]), (high - low) / 255.0


def classify_scan_type(brightness: float, contrast: float) -> ScanType:
    if brightness > 150 and contrast > 0.6:
        return ScanType.XRAY
    if brightness < 100 and contrast > 0.6:
        return ScanType.MRI
    if 100 <= brightness <= 150:
        return ScanType.CT
    if contrast < 0.3:
        return ScanType.ULTRASOUND
    return ScanType.XRAY


def classify_quality(contrast: float) -> ImageQuality:
    if contrast > 0.5:
        return ImageQuality.GOOD
    if contrast > 0.3:
        return ImageQuality.MODERATE
    return ImageQuality.POOR


def derive_urgency(abnormal: bool, regions: list[Region]) -> UrgencyLevel:
    if any(region.severity == Severity.HIGH for region in regions):
        return UrgencyLevel.HIGH
    if abnormal:
        return UrgencyLevel.MEDIUM
    return UrgencyLevel.LOW


class HeuristicProvider(AnalysisProvider):
    """Simulates an analysis from brightness and contrast statistics."""

    def __init__(self, config: AppConfig | None = None) -> None:
        self._config = config or AppConfig()
        self._info = ProviderInfo(
            identifier="builtin.heuristic",
            display_name="Heuristic Simulator",
            description=(
                "Simulated analysis from image brightness and contrast. For demonstrations "
                "only; it does not detect real findings."
            ),
            tags=("simulated", "no-internet", "cpu"),
        )

    def info(self) -> ProviderInfo:
        return self._info

    def load(self) -> None:
        return

    def analyze(
        self, image: ScanImage, *, cancel_token: CancelToken | None = None
    ) -> AnalysisResult:
        if image is None or not image.data:
            raise InvalidInput()
        brightness, contrast = measure_luminance(image.open())
        rng = random.Random(self._config.heuristic_seed)
        result = self.simulate(brightness, contrast, rng)
        logger.debug(
            "Heuristic analysis: brightness=%.1f contrast=%.2f -> %s/%s",
            brightness,
            contrast,
            result.scan_type.value,
            result.status.value,
        )
        self._wait(cancel_token)
        return result

    def simulate(
        self,
        brightness: float,
        contrast: float,
        rng: random.Random,
        *,
        timestamp: datetime | None = None,
    ) -> AnalysisResult:
        """Build a simulated result from precomputed luminance statistics."""
        scan_type = classify_scan_type(brightness, contrast)
        quality = classify_quality(contrast)
        abnormal = rng.random() < ABNORMAL_PROBABILITY

        regions: list[Region] = []
        conditions: list[SuspectedCondition] = []
        if abnormal:
            regions = self._draw_regions(scan_type, rng)
            conditions = self._draw_conditions(scan_type, rng)

        urgency = derive_urgency(abnormal, regions)
        return AnalysisResult(
            scan_type=scan_type,
            image_quality=quality,
            status=FindingStatus.ABNORMAL if abnormal else FindingStatus.NORMAL,
            suspected_conditions=conditions,
            highlighted_regions=regions,
            overall_confidence=rng.randrange(65, 95),
            urgency_level=urgency,
            recommendation=RECOMMENDATIONS[urgency],
            analysis_timestamp=timestamp or datetime.now(timezone.utc),
        )

    @staticmethod
    def _draw_regions(scan_type: ScanType, rng: random.Random) -> list[Region]:
        locations = LOCATIONS.get(scan_type, LOCATIONS[ScanType.XRAY])
        offset = rng.randrange(len(locations))
        regions: list[Region] = []
        for index in range(rng.randint(0, 3)):
            severity = rng.choice(list(Severity))
            regions.append(
                Region(
                    id=f"region-{index}",
                    location=locations[(offset + index) % len(locations)],
                    description=REGION_DESCRIPTIONS[severity],
                    x=rng.uniform(20, 60),
                    y=rng.uniform(20, 60),
                    width=rng.uniform(15, 35),
                    height=rng.uniform(15, 35),
                    severity=severity,
                )
            )
        return regions

    @staticmethod
    def _draw_conditions(scan_type: ScanType, rng: random.Random) -> list[SuspectedCondition]:
        catalogue = CONDITIONS.get(scan_type, CONDITIONS[ScanType.XRAY])
        picks = rng.sample(catalogue, k=rng.randint(1, 2))
        return [
            SuspectedCondition(
                name=name,
                confidence=rng.randrange(45, 95),
                description=description,
            )
            for name, description in picks
        ]

    def _wait(self, cancel_token: CancelToken | None) -> None:
        delay = self._config.heuristic_delay
        if cancel_token is None:
            if delay > 0:
                cancel_token = CancelToken()
            else:
                return
        cancel_token.wait(delay)
        cancel_token.raise_if_cancelled()


def _register() -> None:
    ProviderRegistry.register("builtin.heuristic", HeuristicProvider)


_register()
