"""DeepFace-backed face detector.

Decodes captured images with OpenCV and runs ``DeepFace.represent`` to obtain
one 128-d descriptor plus landmarks per detected face. The model is built once
on :meth:`DeepFaceDetector.warm_up` and shared by every thread afterwards.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import cv2
import numpy as np
from django.conf import settings

from .types import DESCRIPTOR_LENGTH, FaceBox, FaceSample, Point, as_descriptor

logger = logging.getLogger(__name__)

RepresentFn = Callable[..., Any]

_LANDMARK_KEYS = ("left_eye", "right_eye", "nose", "mouth_left", "mouth_right")


def decode_image(image_bytes: bytes) -> Optional[np.ndarray]:
    """Decode an encoded image into a BGR array, or ``None`` when unreadable."""

    frame_array = np.frombuffer(image_bytes, dtype=np.uint8)
    if frame_array.size == 0:
        logger.warning("Encountered empty image payload.")
        return None

    image = cv2.imdecode(frame_array, cv2.IMREAD_COLOR)
    if image is None:
        logger.warning("Failed to decode image payload.")
        return None
    return image


def _as_point(value: Any) -> Optional[Point]:
    if value is None:
        return None
    try:
        x, y = value[0], value[1]
        return Point(float(x), float(y))
    except (TypeError, ValueError, IndexError):
        return None


def parse_landmarks(facial_area: Mapping[str, Any]) -> Dict[str, Point]:
    """Extract named landmarks from a DeepFace ``facial_area`` payload.

    DeepFace reports eyes from the subject's point of view; they are
    reordered so ``left_eye`` is always the one with the smaller x.
    """

    landmarks: Dict[str, Point] = {}
    for key in _LANDMARK_KEYS:
        point = _as_point(facial_area.get(key))
        if point is not None:
            landmarks[key] = point

    if "left_eye" in landmarks and "right_eye" in landmarks:
        first, second = sorted((landmarks["left_eye"], landmarks["right_eye"]), key=lambda p: p.x)
        landmarks["left_eye"], landmarks["right_eye"] = first, second
    if "mouth_left" in landmarks and "mouth_right" in landmarks:
        first, second = sorted((landmarks["mouth_left"], landmarks["mouth_right"]), key=lambda p: p.x)
        landmarks["mouth_left"], landmarks["mouth_right"] = first, second
    return landmarks


def _default_represent(**kwargs: Any) -> Any:
    from deepface import DeepFace

    return DeepFace.represent(**kwargs)


def _default_build_model(model_name: str) -> Any:
    from deepface import DeepFace

    return DeepFace.build_model(model_name)


class DeepFaceDetector:
    """Detect faces and compute descriptors with DeepFace.

    Args:
        model_name: DeepFace recognition model; must produce 128-d vectors.
        detector_backend: DeepFace detector backend.
        detection_threshold: Detections with lower ``face_confidence`` are dropped.
        represent: Injected replacement for ``DeepFace.represent``.
        build_model: Injected replacement for ``DeepFace.build_model``.
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        detector_backend: Optional[str] = None,
        detection_threshold: Optional[float] = None,
        *,
        represent: Optional[RepresentFn] = None,
        build_model: Optional[Callable[[str], Any]] = None,
    ) -> None:
        self.model_name = model_name or getattr(settings, "VERIFICATION_FACE_MODEL", "Facenet")
        self.detector_backend = detector_backend or getattr(
            settings, "VERIFICATION_FACE_DETECTOR_BACKEND", "retinaface"
        )
        if detection_threshold is None:
            detection_threshold = float(getattr(settings, "VERIFICATION_DETECTION_THRESHOLD", 0.5))
        self.detection_threshold = detection_threshold
        self._represent = represent or _default_represent
        self._build_model = build_model or _default_build_model
        self._warm_lock = threading.Lock()
        self._warmed = False

    @property
    def is_warm(self) -> bool:
        return self._warmed

    def warm_up(self) -> None:
        """Load the recognition model once; later calls are no-ops."""

        if self._warmed:
            return
        with self._warm_lock:
            if self._warmed:
                return
            logger.info("Loading DeepFace model %s", self.model_name)
            self._build_model(self.model_name)
            self._warmed = True

    def detect_faces(self, image: bytes) -> Sequence[FaceSample]:
        frame = decode_image(image)
        if frame is None:
            return []

        self.warm_up()
        representations = self._represent(
            img_path=frame,
            model_name=self.model_name,
            detector_backend=self.detector_backend,
            enforce_detection=False,
        )
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        return self._to_samples(representations, rgb)

    def _to_samples(self, representations: Any, rgb: np.ndarray) -> List[FaceSample]:
        if isinstance(representations, dict):
            representations = [representations]
        if not isinstance(representations, list):
            logger.debug("Unexpected DeepFace payload type: %s", type(representations).__name__)
            return []

        samples: List[FaceSample] = []
        for representation in representations:
            if not isinstance(representation, dict):
                continue

            confidence = float(representation.get("face_confidence", 1.0) or 0.0)
            if confidence < self.detection_threshold:
                continue

            area = representation.get("facial_area") or {}
            box = FaceBox(
                x=int(area.get("x", 0)),
                y=int(area.get("y", 0)),
                width=int(area.get("w", rgb.shape[1])),
                height=int(area.get("h", rgb.shape[0])),
            )

            descriptor = None
            embedding = representation.get("embedding")
            if embedding is not None:
                if len(embedding) != DESCRIPTOR_LENGTH:
                    logger.warning(
                        "Model %s produced %d-d embeddings; %d are required",
                        self.model_name,
                        len(embedding),
                        DESCRIPTOR_LENGTH,
                    )
                else:
                    descriptor = as_descriptor(embedding)

            samples.append(
                FaceSample(
                    image=rgb,
                    box=box,
                    landmarks=parse_landmarks(area),
                    confidence=min(1.0, max(0.0, confidence)),
                    descriptor=descriptor,
                )
            )
        return samples


__all__ = ["DeepFaceDetector", "decode_image", "parse_landmarks"]
