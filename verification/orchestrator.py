"""Verification service: one decision per enrollment or check-in attempt.

A check-in moves through ``CAPTURED -> QUALITY_CHECKED -> MATCHED ->
CONTEXT_CHECKED -> ACCEPTED`` and may stop as rejected after any step. The
result's ``stage`` is the last step the attempt completed, so a capture
rejected for low quality reports ``CAPTURED`` and an accepted one reports
``ACCEPTED``.

The service owns its collaborators (stores, detector, location provider,
codec), a profile cache and two bounded thread pools: one that runs whole
attempts for coroutine callers and one for blocking location signal calls.
"""

from __future__ import annotations

import asyncio
import datetime
import functools
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from contextlib import contextmanager
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np
from django.utils import timezone

from . import monitoring
from .codec import BiometricTemplateCodec, short_hash
from .config import VerificationConfig
from .errors import (
    DecryptionIntegrityFailure,
    DuplicateAttendance,
    EnrollmentError,
    ErrorKind,
    Rejection,
    SignalTimeout,
)
from .interfaces import (
    AttendanceStore,
    EnrollmentStore,
    FaceDetector,
    LocationProvider,
    SessionStore,
)
from .location import LocationDecision, LocationValidator
from .matching import DescriptorMatcher
from .profile_cache import CachedProfile, ProfileCache
from .quality import QualityAssessor
from .types import (
    AttendanceMethod,
    AttendanceRecord,
    CheckInContext,
    ClassSession,
    EncryptedTemplate,
    EnrolledProfile,
    FaceSample,
    GpsFix,
    QualityScore,
    SessionLocation,
    VerificationResult,
    WifiNetwork,
)
from .window import AttendanceWindowEvaluator

logger = logging.getLogger(__name__)


class AttemptStage(str, Enum):
    CAPTURED = "captured"
    QUALITY_CHECKED = "quality_checked"
    MATCHED = "matched"
    CONTEXT_CHECKED = "context_checked"
    ACCEPTED = "accepted"


@contextmanager
def _timed(stage: str) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    finally:
        monitoring.observe_stage_duration(stage, time.perf_counter() - start)


class VerificationService:
    """Compose quality, matching, window and location checks into one decision.

    Construct one instance at process start and pass it to every call site.
    """

    def __init__(
        self,
        *,
        detector: FaceDetector,
        enrollment_store: EnrollmentStore,
        session_store: SessionStore,
        attendance_store: AttendanceStore,
        location_provider: Optional[LocationProvider] = None,
        codec: Optional[BiometricTemplateCodec] = None,
        config: Optional[VerificationConfig] = None,
        profile_cache: Optional[ProfileCache] = None,
    ) -> None:
        self.config = config or VerificationConfig.from_settings()
        self.detector = detector
        self.enrollment_store = enrollment_store
        self.session_store = session_store
        self.attendance_store = attendance_store
        self.location_provider = location_provider
        self.codec = codec or BiometricTemplateCodec()
        self.profile_cache = profile_cache or ProfileCache()

        self.quality = QualityAssessor(self.config.quality)
        self.matcher = DescriptorMatcher(self.config.matching)
        self.window = AttendanceWindowEvaluator(self.config.window)
        self.locations = LocationValidator(self.config.location)

        self._executor = ThreadPoolExecutor(
            max_workers=self.config.worker_pool_size, thread_name_prefix="verification"
        )
        self._signal_executor = ThreadPoolExecutor(
            max_workers=max(2, self.config.worker_pool_size),
            thread_name_prefix="verification-signal",
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def warm_up(self) -> None:
        """Load the detector model and derive the template key before serving."""

        warm = getattr(self.detector, "warm_up", None)
        if callable(warm):
            warm()
        self.codec.warm_up()

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        self._signal_executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "VerificationService":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Capture handling
    # ------------------------------------------------------------------
    def _single_face(
        self, image: bytes
    ) -> Tuple[Optional[FaceSample], Optional[QualityScore], Optional[Rejection]]:
        """Detect exactly one face and gate it on quality."""

        with _timed("detection"):
            samples = list(self.detector.detect_faces(image))

        if not samples:
            return None, None, Rejection.of(ErrorKind.NO_FACE_DETECTED)
        if len(samples) > 1:
            return None, None, Rejection.of(ErrorKind.MULTIPLE_FACES_DETECTED, faces=len(samples))

        sample = samples[0]
        with _timed("quality"):
            quality = self.quality.assess(sample)
        if not quality.passes(self.quality.acceptance_floor):
            return sample, quality, Rejection.of(
                ErrorKind.LOW_QUALITY_IMAGE,
                floor=self.quality.acceptance_floor,
                **quality.as_details(),
            )
        if sample.descriptor is None:
            return sample, quality, Rejection.of(
                ErrorKind.NO_FACE_DETECTED, "No face descriptor could be computed. Please retake the photo."
            )
        return sample, quality, None

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------
    def verify_enrollment(self, images: Sequence[bytes]) -> EnrolledProfile:
        """Build an encrypted profile from enrollment images.

        Every image must contain exactly one face that clears the quality
        floor to contribute a template. Images whose descriptor duplicates an
        earlier one (same template hash) are kept once.

        Args:
            images: Encoded enrollment images.

        Returns:
            EnrolledProfile with one template per usable image and the mean
            quality of those images.

        Raises:
            EnrollmentError: When no image yields a usable template; carries
                the per-image rejections.
        """

        templates: List[EncryptedTemplate] = []
        scores: List[float] = []
        seen_hashes = set()
        rejections: List[Rejection] = []

        for index, image in enumerate(images):
            sample, quality, rejection = self._single_face(image)
            if rejection is not None:
                logger.info("Enrollment image %d rejected: %s", index, rejection.kind.value)
                rejections.append(rejection)
                continue

            template = self.codec.encrypt(sample.descriptor)
            if template.template_hash in seen_hashes:
                logger.debug("Skipping duplicate enrollment template %s", short_hash(template.template_hash))
                continue
            seen_hashes.add(template.template_hash)
            templates.append(template)
            scores.append(quality.score)

        if not templates:
            monitoring.record_enrollment(False)
            raise EnrollmentError("No enrollment image produced a usable face template", rejections)

        return EnrolledProfile(templates=tuple(templates), average_quality=float(np.mean(scores)))

    def enroll(self, user_id: str, images: Sequence[bytes]) -> EnrolledProfile:
        """Verify ``images``, replace the stored profile and invalidate the cache."""

        profile = self.verify_enrollment(images)
        self.enrollment_store.put_profile(user_id, profile)
        self.profile_cache.invalidate(user_id)
        monitoring.record_enrollment(True)
        logger.info("Enrolled user %s with %d templates", user_id, len(profile.templates))
        return profile

    def delete_enrollment(self, user_id: str) -> None:
        self.enrollment_store.delete_profile(user_id)
        self.profile_cache.invalidate(user_id)

    def decrypt_template(self, template: EncryptedTemplate) -> np.ndarray:
        """Decrypt a stored template for audit purposes.

        Raises:
            DecryptionIntegrityFailure: The template is tampered or corrupted.
        """

        try:
            return self.codec.decrypt(template)
        except DecryptionIntegrityFailure:
            monitoring.report_integrity_failure("audit", template.template_hash)
            raise

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------
    def _load_profile(self, user_id: str) -> Tuple[Optional[CachedProfile], int]:
        """Return the cached descriptors for ``user_id`` and the number of failed templates.

        Templates withheld by the store because they await integrity review
        count as failed, so a profile whose every template is under review
        keeps reporting an integrity failure instead of looking unenrolled.
        """

        failures: List[str] = []
        under_review: List[int] = []

        def loader() -> Optional[CachedProfile]:
            profile = self.enrollment_store.get_profile(user_id)
            if profile is None:
                return None
            under_review.append(profile.flagged_templates)

            descriptors = []
            hashes = []
            for template in profile.templates:
                try:
                    descriptors.append(self.codec.decrypt(template))
                except DecryptionIntegrityFailure:
                    failures.append(template.template_hash)
                    monitoring.report_integrity_failure(user_id, template.template_hash)
                    self.enrollment_store.flag_template(user_id, template.template_hash)
                    continue
                hashes.append(template.template_hash)

            if not descriptors:
                return None
            return CachedProfile(
                descriptors=tuple(descriptors),
                template_hashes=tuple(hashes),
                average_quality=profile.average_quality,
            )

        with _timed("profile_load"):
            cached = self.profile_cache.load(user_id, loader)
        return cached, len(failures) + sum(under_review)

    # ------------------------------------------------------------------
    # Location signals
    # ------------------------------------------------------------------
    def _collect_signals(
        self, context: CheckInContext, location: SessionLocation
    ) -> Tuple[Optional[Sequence[WifiNetwork]], Optional[GpsFix], List[str]]:
        """Resolve missing signals from the provider within the signal deadline.

        Returns the WiFi scan, the GPS fix and the names of signals that were
        unavailable in time. A missing signal is returned as ``None``.
        """

        wifi = context.wifi
        gps = context.gps
        provider = self.location_provider
        pending: Dict[str, Future] = {}

        if provider is not None:
            if wifi is None and location.wifi_ssids:
                pending["wifi"] = self._signal_executor.submit(provider.scan_wifi)
            if gps is None and location.gps is not None:
                pending["gps"] = self._signal_executor.submit(provider.get_gps_fix)

        timed_out: List[str] = []
        deadline = time.monotonic() + self.config.signal_timeout_seconds
        for name, future in pending.items():
            remaining = max(0.0, deadline - time.monotonic())
            try:
                value = future.result(timeout=remaining)
            except (FutureTimeout, SignalTimeout):
                future.cancel()
                timed_out.append(name)
                monitoring.record_signal_timeout(name)
                continue
            except Exception as exc:
                # Provider failures drop only this signal.
                logger.warning("Location signal '%s' failed: %s", name, exc)
                continue

            if name == "wifi":
                wifi = list(value)
            else:
                gps = value

        return wifi, gps, timed_out

    def _check_location(
        self, context: CheckInContext, location: SessionLocation
    ) -> Tuple[LocationDecision, Optional[Rejection]]:
        if not location.is_constrained:
            return self.locations.validate(location), None

        wifi, gps, timed_out = self._collect_signals(context, location)
        decision = self.locations.validate(location, wifi, gps)
        if decision.valid:
            return decision, None

        required = {"wifi"} if location.wifi_ssids else set()
        if location.gps is not None:
            required.add("gps")
        if timed_out and required.issubset(timed_out):
            return decision, Rejection.of(ErrorKind.SIGNAL_TIMEOUT, signals=sorted(timed_out))

        rejection = decision.as_rejection()
        if timed_out:
            rejection = Rejection(
                kind=rejection.kind,
                message=rejection.message,
                details={**rejection.details, "timed_out": sorted(timed_out)},
            )
        return decision, rejection

    # ------------------------------------------------------------------
    # Check-in
    # ------------------------------------------------------------------
    def _find_session(self, class_id: str, now: datetime.datetime) -> Optional[ClassSession]:
        """Session of ``class_id`` held on the date ``now`` falls on in the session's timezone.

        Every UTC offset keeps the local date within a day of the UTC date, so
        the candidates are the UTC date and its neighbours.
        """

        if now.tzinfo is None or now.utcoffset() is None:
            raise ValueError("Check-in time must be timezone-aware")
        utc_date = now.astimezone(datetime.timezone.utc).date()
        for offset in (0, -1, 1):
            candidate = self.session_store.get_session(class_id, utc_date + datetime.timedelta(days=offset))
            if candidate is not None and now.astimezone(candidate.tz).date() == candidate.date:
                return candidate
        return None

    def _finish(self, result: VerificationResult, student_id: str, class_id: str) -> VerificationResult:
        outcome = "accepted" if result.accepted else result.reason.kind.value
        monitoring.record_attempt(outcome)
        logger.info(
            "Check-in for student %s in class %s: %s (confidence %.2f)",
            student_id,
            class_id,
            outcome,
            result.confidence,
        )
        return result

    def verify_check_in(
        self,
        student_id: str,
        class_id: str,
        captured_image: bytes,
        context: Optional[CheckInContext] = None,
        *,
        now: Optional[datetime.datetime] = None,
    ) -> VerificationResult:
        """Decide whether to accept a check-in and record it when accepted.

        Args:
            student_id: Student attempting to check in.
            class_id: Class being attended.
            captured_image: Freshly captured, encoded image.
            context: Location signals supplied by the caller; missing ones
                are requested from the location provider.
            now: Timezone-aware attempt time; defaults to the current time.

        Returns:
            VerificationResult. ``accepted`` is ``True`` only when a new record
            was written; duplicates return the existing record with a
            ``DUPLICATE_ATTENDANCE`` reason.
        """

        context = context or CheckInContext()
        now = now or timezone.now()

        def finish(result: VerificationResult) -> VerificationResult:
            return self._finish(result, student_id, class_id)

        sample, quality, rejection = self._single_face(captured_image)
        if rejection is not None:
            return finish(
                VerificationResult(
                    accepted=False,
                    stage=AttemptStage.CAPTURED,
                    confidence=quality.score if quality is not None else 0.0,
                    reason=rejection,
                    quality=quality,
                )
            )

        cached, failed_templates = self._load_profile(student_id)
        if cached is None:
            if failed_templates:
                reason = Rejection.of(
                    ErrorKind.DECRYPTION_INTEGRITY_FAILURE, failed_templates=failed_templates
                )
            else:
                reason = Rejection.of(ErrorKind.NO_MATCH, enrolled=False)
            return finish(
                VerificationResult(
                    accepted=False,
                    stage=AttemptStage.QUALITY_CHECKED,
                    confidence=0.0,
                    reason=reason,
                    quality=quality,
                )
            )

        with _timed("matching"):
            best, match = self.matcher.evaluate(sample.descriptor, cached.descriptors)
        best_similarity = best.similarity if best is not None else 0.0
        monitoring.observe_similarity(best_similarity)
        if match is None:
            return finish(
                VerificationResult(
                    accepted=False,
                    stage=AttemptStage.QUALITY_CHECKED,
                    confidence=best_similarity,
                    reason=Rejection.of(
                        ErrorKind.NO_MATCH,
                        similarity=best_similarity,
                        threshold=self.matcher.threshold,
                    ),
                    quality=quality,
                )
            )

        similarity = match.similarity
        session = self._find_session(class_id, now)
        if session is None:
            return finish(
                VerificationResult(
                    accepted=False,
                    stage=AttemptStage.MATCHED,
                    confidence=similarity,
                    matched_profile_index=match.index,
                    reason=Rejection.of(ErrorKind.WINDOW_CLOSED, "No class session is scheduled today."),
                    quality=quality,
                )
            )

        window = self.window.evaluate(now, session)
        if not window.allowed:
            return finish(
                VerificationResult(
                    accepted=False,
                    stage=AttemptStage.MATCHED,
                    confidence=similarity,
                    matched_profile_index=match.index,
                    reason=window.as_rejection(),
                    quality=quality,
                )
            )

        with _timed("location"):
            location, location_rejection = self._check_location(context, session.location)
        if location_rejection is not None:
            return finish(
                VerificationResult(
                    accepted=False,
                    stage=AttemptStage.MATCHED,
                    confidence=location.confidence,
                    matched_profile_index=match.index,
                    reason=location_rejection,
                    quality=quality,
                    location=location,
                )
            )

        existing = self.attendance_store.find_record(student_id, class_id, session.date)
        if existing is not None:
            return finish(self._duplicate(existing, similarity, match.index, quality, location))

        status = self.window.determine_status(now, session)
        record = AttendanceRecord(
            student_id=student_id,
            class_id=class_id,
            date=session.date,
            status=status,
            method=AttendanceMethod.FACE_RECOGNITION,
            check_in_time=now,
            confidence=similarity,
        )
        try:
            stored = self.attendance_store.insert_record(record)
        except DuplicateAttendance as exc:
            return finish(self._duplicate(exc.existing, similarity, match.index, quality, location))

        return finish(
            VerificationResult(
                accepted=True,
                stage=AttemptStage.ACCEPTED,
                confidence=similarity,
                status=stored.status,
                matched_profile_index=match.index,
                record=stored,
                quality=quality,
                location=location,
            )
        )

    @staticmethod
    def _duplicate(
        existing: Optional[AttendanceRecord],
        similarity: float,
        index: int,
        quality: QualityScore,
        location: LocationDecision,
    ) -> VerificationResult:
        return VerificationResult(
            accepted=False,
            stage=AttemptStage.CONTEXT_CHECKED,
            confidence=similarity,
            status=existing.status if existing is not None else None,
            matched_profile_index=index,
            reason=Rejection.of(ErrorKind.DUPLICATE_ATTENDANCE),
            record=existing,
            quality=quality,
            location=location,
        )

    async def verify_check_in_async(
        self,
        student_id: str,
        class_id: str,
        captured_image: bytes,
        context: Optional[CheckInContext] = None,
        *,
        now: Optional[datetime.datetime] = None,
    ) -> VerificationResult:
        """Run :meth:`verify_check_in` in the worker pool."""

        loop = asyncio.get_running_loop()
        call = functools.partial(
            self.verify_check_in, student_id, class_id, captured_image, context, now=now
        )
        return await loop.run_in_executor(self._executor, call)


__all__ = ["AttemptStage", "VerificationService"]
