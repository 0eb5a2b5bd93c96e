"""Tests for the heuristic simulation provider."""

from __future__ import annotations

import random

import pytest
from medscan.config import AppConfig
from medscan.errors import AnalysisCancelled, InvalidInput
from medscan.images import ScanImage
from medscan.providers.base import CancelToken
from medscan.providers.heuristic import (
    HeuristicProvider,
    classify_quality,
    classify_scan_type,
    measure_luminance,
)
from medscan.schema import FindingStatus, ImageQuality, ScanType
from PIL import Image


def _split_image(dark: int, light: int, size=(64, 64)) -> Image.Image:
    image = Image.new("L", size, color=dark)
    image.paste(light, (0, 0, size[0] // 2, size[1]))
    return image


def test_measure_luminance_of_uniform_image():
    brightness, contrast = measure_luminance(Image.new("RGB", (32, 32), color=(200, 200, 200)))
    assert brightness == pytest.approx(200, abs=1)
    assert contrast == 0


def test_measure_luminance_contrast_range():
    _, contrast = measure_luminance(_split_image(0, 255))
    assert contrast == pytest.approx(1.0)


@pytest.mark.parametrize(
    ("brightness", "contrast", "expected"),
    [
        (200, 0.7, ScanType.XRAY),
        (80, 0.75, ScanType.MRI),
        (120, 0.2, ScanType.CT),
        (120, 0.9, ScanType.CT),
        (40, 0.1, ScanType.ULTRASOUND),
        (200, 0.5, ScanType.XRAY),
    ],
)
def test_classify_scan_type(brightness, contrast, expected):
    assert classify_scan_type(brightness, contrast) == expected


@pytest.mark.parametrize(
    ("contrast", "expected"),
    [(0.9, ImageQuality.GOOD), (0.4, ImageQuality.MODERATE), (0.3, ImageQuality.POOR)],
)
def test_classify_quality(contrast, expected):
    assert classify_quality(contrast) == expected


def test_simulate_respects_result_bounds():
    provider = HeuristicProvider(AppConfig(heuristic_delay=0))
    for seed in range(50):
        result = provider.simulate(180.0, 0.8, random.Random(seed))

        assert result.status in (FindingStatus.NORMAL, FindingStatus.ABNORMAL)
        assert 65 <= result.overall_confidence < 95
        assert result.differential_diagnoses is None
        assert not result.is_poor_quality_failure
        if result.status == FindingStatus.NORMAL:
            assert result.suspected_conditions == ()
            assert result.highlighted_regions == ()
        else:
            assert 1 <= len(result.suspected_conditions) <= 2
            assert len(result.highlighted_regions) <= 3
            for region in result.highlighted_regions:
                assert 20 <= region.x <= 60 and 20 <= region.y <= 60
                assert 15 <= region.width <= 35 and 15 <= region.height <= 35


def test_analyze_bright_high_contrast_scan():
    provider = HeuristicProvider(AppConfig(heuristic_delay=0, heuristic_seed=3))
    image = ScanImage.from_pil(_split_image(120, 255, size=(128, 128)), source="upload")

    result = provider.analyze(image)

    assert result.scan_type == ScanType.XRAY
    assert result.image_quality == ImageQuality.GOOD
    assert result.recommendation


def test_analyze_is_reproducible_with_seed():
    config = AppConfig(heuristic_delay=0, heuristic_seed=11)
    image = ScanImage.from_pil(_split_image(10, 200), source="upload")

    first = HeuristicProvider(config).analyze(image)
    second = HeuristicProvider(config).analyze(image)

    assert first.model_dump(exclude={"analysis_timestamp"}) == second.model_dump(
        exclude={"analysis_timestamp"}
    )


def test_analyze_rejects_empty_image():
    provider = HeuristicProvider(AppConfig(heuristic_delay=0))
    with pytest.raises(InvalidInput):
        provider.analyze(ScanImage(data=b""))


def test_analyze_honours_cancellation():
    provider = HeuristicProvider(AppConfig(heuristic_delay=5))
    token = CancelToken()
    token.cancel()

    with pytest.raises(AnalysisCancelled):
        provider.analyze(ScanImage.from_pil(_split_image(0, 255)), cancel_token=token)
