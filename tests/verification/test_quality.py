"""Tests for the face image quality assessor."""

from __future__ import annotations

import numpy as np
import pytest

from factories import FACE_BOX, NEUTRAL_LANDMARKS, checkerboard_frame, face_sample, uniform_frame
from verification import quality
from verification.config import QualityConfig
from verification.types import FaceBox, Point, Pose


@pytest.fixture
def assessor() -> quality.QualityAssessor:
    return quality.QualityAssessor(QualityConfig())


def test_sharp_well_lit_centred_face_scores_one(assessor) -> None:
    score = assessor.assess(face_sample())

    assert score.score == pytest.approx(1.0)
    assert score.brightness == pytest.approx(140 / 255)
    assert score.sharpness == 1.0
    assert score.face_ratio == pytest.approx(0.25)
    assert score.face_size_px == 100
    assert score.issues == ()


def test_blurry_face_is_penalised_to_the_floor(assessor) -> None:
    score = assessor.assess(face_sample(image=uniform_frame(140)))

    assert score.sharpness == 0.0
    assert score.score == pytest.approx(0.7)
    assert any("blurry" in issue for issue in score.issues)


def test_dark_blurry_face_fails_the_floor(assessor) -> None:
    score = assessor.assess(face_sample(image=uniform_frame(20)))

    assert score.score == pytest.approx(0.6 * 0.7)
    assert not score.passes(assessor.acceptance_floor)
    assert any("too dark" in issue for issue in score.issues)


def test_score_stays_within_unit_interval_for_random_frames(assessor) -> None:
    rng = np.random.default_rng(7)
    for _ in range(20):
        frame = rng.integers(0, 256, size=(120, 160, 3), dtype=np.uint8)
        x, y = int(rng.integers(0, 100)), int(rng.integers(0, 60))
        box = FaceBox(x, y, int(rng.integers(1, 160)), int(rng.integers(1, 120)))
        score = assessor.assess(face_sample(image=frame, box=box))
        assert 0.0 <= score.score <= 1.0
        assert 0.0 <= score.brightness <= 1.0
        assert 0.0 <= score.sharpness <= 1.0


@pytest.mark.parametrize(
    "ratio,expected",
    [
        (0.05, 0.6),
        (0.0999, 0.6),
        (0.10, 0.8),
        (0.12, 0.8),
        (0.15, 1.0),
        (0.40, 1.0),
        (0.50, 0.8),
        (0.60, 0.8),
        (0.61, 0.7),
    ],
)
def test_face_size_multiplier_breakpoints(ratio: float, expected: float) -> None:
    assert quality.face_size_multiplier(ratio, QualityConfig()) == expected


@pytest.mark.parametrize(
    "angle,expected",
    [(0.0, 1.0), (15.0, 1.0), (15.5, 0.7), (30.0, 0.7), (30.5, 0.5), (-45.0, 0.5)],
)
def test_pose_multiplier_uses_largest_absolute_angle(angle: float, expected: float) -> None:
    pose = Pose(yaw=0.0, pitch=angle, roll=1.0)
    assert quality.pose_multiplier(pose, QualityConfig()) == expected


@pytest.mark.parametrize(
    "brightness,expected",
    [(0.29, 0.6), (0.3, 1.0), (0.8, 1.0), (0.81, 0.6)],
)
def test_brightness_multiplier_range(brightness: float, expected: float) -> None:
    assert quality.brightness_multiplier(brightness, QualityConfig()) == expected


def test_sharpness_multiplier_threshold() -> None:
    config = QualityConfig()
    assert quality.sharpness_multiplier(0.49, config) == 0.7
    assert quality.sharpness_multiplier(0.5, config) == 1.0


def test_neutral_landmarks_produce_zero_pose() -> None:
    pose = quality.estimate_pose(NEUTRAL_LANDMARKS)

    assert pose.yaw == pytest.approx(0.0)
    assert pose.roll == pytest.approx(0.0)
    assert pose.pitch == pytest.approx(0.0)


def test_turned_head_increases_yaw_and_penalises_score(assessor) -> None:
    landmarks = dict(NEUTRAL_LANDMARKS)
    landmarks["nose"] = Point(120.0, 110.0)

    pose = quality.estimate_pose(landmarks)
    assert pose.yaw == pytest.approx(45.0)

    score = assessor.assess(face_sample(landmarks=landmarks))
    assert score.score == pytest.approx(0.5)
    assert any("Head is turned" in issue for issue in score.issues)


def test_tilted_eyes_produce_roll() -> None:
    landmarks = dict(NEUTRAL_LANDMARKS)
    landmarks["right_eye"] = Point(120.0, 130.0)

    pose = quality.estimate_pose(landmarks)
    assert pose.roll == pytest.approx(45.0)


def test_missing_landmarks_fall_back_to_neutral_pose() -> None:
    assert quality.estimate_pose({"left_eye": Point(0, 0)}) == Pose()


def test_brightness_uses_bt601_luma() -> None:
    region = np.zeros((4, 4, 3), dtype=np.uint8)
    region[..., 1] = 255

    assert quality.estimate_brightness(region) == pytest.approx(0.587)


def test_sharpness_of_tiny_region_is_zero() -> None:
    assert quality.estimate_sharpness(np.full((2, 2, 3), 255, dtype=np.uint8)) == 0.0


def test_sharpness_scales_with_divisor() -> None:
    region = checkerboard_frame(low=120, high=130)[FACE_BOX.y : FACE_BOX.y + 10, FACE_BOX.x : FACE_BOX.x + 10]

    # Every interior pixel differs by 10 from both neighbours.
    expected = float(np.hypot(10.0, 10.0)) / 50.0
    assert quality.estimate_sharpness(region, divisor=50.0) == pytest.approx(expected)


def test_crop_face_clips_box_to_frame() -> None:
    frame = uniform_frame(10)
    region = quality.crop_face(frame, FaceBox(x=-20, y=150, width=100, height=100))

    assert region.shape == (50, 80, 3)


def test_small_face_reports_distance_issue(assessor) -> None:
    box = FaceBox(x=90, y=90, width=20, height=20)
    frame = checkerboard_frame(box=box)
    score = assessor.assess(face_sample(image=frame, box=box))

    assert score.face_ratio == pytest.approx(0.01)
    assert score.score == pytest.approx(0.6)
    assert any("too small" in issue for issue in score.issues)
