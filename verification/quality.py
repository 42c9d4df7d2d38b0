"""Image quality assessment for captured face samples.

The assessor turns a detected face into a :class:`~verification.types.QualityScore`
by combining four multiplicative penalties: face size relative to the frame,
head pose estimated from landmarks, brightness of the face region and
sharpness of the face region. The composite score is a gate: samples scoring
below the configured acceptance floor must not reach matching or enrollment.
"""

from __future__ import annotations

import logging
import math
from typing import List, Mapping, Optional

import numpy as np

from .config import QualityConfig
from .types import FaceBox, FaceSample, Point, Pose, QualityScore

logger = logging.getLogger(__name__)

# ITU-R BT.601 luma weights for R, G, B.
_LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)

_POSE_LANDMARKS = ("left_eye", "right_eye", "nose", "mouth_left", "mouth_right")


def crop_face(image: np.ndarray, box: FaceBox) -> np.ndarray:
    """Return the part of ``image`` covered by ``box``, clipped to the frame."""

    height, width = image.shape[:2]
    x0 = min(max(int(box.x), 0), width)
    y0 = min(max(int(box.y), 0), height)
    x1 = min(max(int(box.x + box.width), 0), width)
    y1 = min(max(int(box.y + box.height), 0), height)
    return image[y0:y1, x0:x1]


def _to_luma(region: np.ndarray) -> np.ndarray:
    """Convert an RGB (or already grayscale) region to float luma values."""

    if region.ndim == 2:
        return region.astype(np.float64)
    return region[..., :3].astype(np.float64) @ _LUMA_WEIGHTS


def estimate_brightness(region: np.ndarray) -> float:
    """Mean luma of ``region`` normalised to [0, 1]."""

    if region.size == 0:
        return 0.0
    return float(np.mean(_to_luma(region)) / 255.0)


def estimate_sharpness(region: np.ndarray, divisor: float = 50.0) -> float:
    """Mean finite-difference gradient magnitude, normalised and clamped to [0, 1].

    Gradients are taken towards the right and lower neighbours of every
    interior pixel, so regions smaller than 3x3 have no measurable edges.
    """

    luma = _to_luma(region)
    if luma.ndim != 2 or luma.shape[0] < 3 or luma.shape[1] < 3:
        return 0.0

    current = luma[1:-1, 1:-1]
    gradient_x = np.abs(current - luma[1:-1, 2:])
    gradient_y = np.abs(current - luma[2:, 1:-1])
    mean_gradient = float(np.mean(np.hypot(gradient_x, gradient_y)))
    return min(1.0, max(0.0, mean_gradient / divisor))


def estimate_pose(landmarks: Mapping[str, Point]) -> Pose:
    """Estimate yaw, pitch and roll (degrees) from five facial landmarks.

    Missing landmarks yield a neutral pose, matching detectors that do not
    report mouth or nose points.
    """

    if any(name not in landmarks for name in _POSE_LANDMARKS):
        return Pose()

    left_eye = landmarks["left_eye"]
    right_eye = landmarks["right_eye"]
    nose = landmarks["nose"]
    mouth_left = landmarks["mouth_left"]
    mouth_right = landmarks["mouth_right"]

    eye_center_x = (left_eye.x + right_eye.x) / 2
    eye_center_y = (left_eye.y + right_eye.y) / 2

    yaw = math.degrees(math.atan2(nose.x - eye_center_x, nose.y - eye_center_y))
    roll = math.degrees(math.atan2(right_eye.y - left_eye.y, right_eye.x - left_eye.x))

    mouth_center_x = (mouth_left.x + mouth_right.x) / 2
    mouth_center_y = (mouth_left.y + mouth_right.y) / 2
    pitch = (
        math.degrees(math.atan2(mouth_center_y - eye_center_y, abs(mouth_center_x - eye_center_x)))
        - 90.0
    )

    return Pose(yaw=yaw, pitch=pitch, roll=roll)


def face_size_multiplier(face_ratio: float, config: QualityConfig) -> float:
    size = config.size
    if face_ratio < size.too_small:
        return size.too_small_multiplier
    if face_ratio > size.too_large:
        return size.too_large_multiplier
    if size.optimal_min <= face_ratio <= size.optimal_max:
        return 1.0
    return size.suboptimal_multiplier


def pose_multiplier(pose: Pose, config: QualityConfig) -> float:
    angle = pose.max_angle
    if angle > config.pose.extreme:
        return config.pose.extreme_multiplier
    if angle > config.pose.moderate:
        return config.pose.moderate_multiplier
    return 1.0


def brightness_multiplier(brightness: float, config: QualityConfig) -> float:
    if brightness < config.brightness_min or brightness > config.brightness_max:
        return config.brightness_multiplier
    return 1.0


def sharpness_multiplier(sharpness: float, config: QualityConfig) -> float:
    if sharpness < config.sharpness_min:
        return config.sharpness_multiplier
    return 1.0


class QualityAssessor:
    """Score face samples against a :class:`QualityConfig`."""

    def __init__(self, config: Optional[QualityConfig] = None) -> None:
        self.config = config or QualityConfig()

    @property
    def acceptance_floor(self) -> float:
        return self.config.acceptance_floor

    def assess(self, sample: FaceSample) -> QualityScore:
        """Evaluate the quality of a single face sample.

        Args:
            sample: Detected face with its source frame, box and landmarks.

        Returns:
            QualityScore whose ``score`` is the product of the size, pose,
            brightness and sharpness multipliers, clamped to [0, 1].
        """

        config = self.config
        issues: List[str] = []

        image_width, image_height = sample.image_size
        image_area = image_width * image_height
        face_ratio = sample.box.area / image_area if image_area > 0 else 0.0
        size_factor = face_size_multiplier(face_ratio, config)
        if face_ratio < config.size.too_small:
            issues.append("Face is too small in frame - move closer to camera")
        elif face_ratio > config.size.too_large:
            issues.append("Face is too close to the camera - move back slightly")

        pose = estimate_pose(sample.landmarks)
        pose_factor = pose_multiplier(pose, config)
        if pose_factor < 1.0:
            issues.append(f"Head is turned ({pose.max_angle:.0f} degrees) - look straight at the camera")

        region = crop_face(sample.image, sample.box)
        brightness = estimate_brightness(region)
        brightness_factor = brightness_multiplier(brightness, config)
        if brightness < config.brightness_min:
            issues.append("Image is too dark - consider better lighting")
        elif brightness > config.brightness_max:
            issues.append("Image may be overexposed - reduce lighting intensity")

        sharpness = estimate_sharpness(region, config.sharpness_divisor)
        sharpness_factor = sharpness_multiplier(sharpness, config)
        if sharpness_factor < 1.0:
            issues.append(f"Image is blurry (sharpness: {sharpness:.2f})")

        score = size_factor * pose_factor * brightness_factor * sharpness_factor
        score = min(1.0, max(0.0, score))

        logger.debug(
            "Quality score %.3f (size=%.2f pose=%.2f brightness=%.2f sharpness=%.2f)",
            score,
            size_factor,
            pose_factor,
            brightness_factor,
            sharpness_factor,
        )

        return QualityScore(
            score=score,
            brightness=brightness,
            sharpness=sharpness,
            face_size_px=float(min(sample.box.width, sample.box.height)),
            face_ratio=face_ratio,
            pose=pose,
            issues=tuple(issues),
        )


__all__ = [
    "QualityAssessor",
    "brightness_multiplier",
    "crop_face",
    "estimate_brightness",
    "estimate_pose",
    "estimate_sharpness",
    "face_size_multiplier",
    "pose_multiplier",
    "sharpness_multiplier",
]
