"""Django ORM implementations of the enrollment and attendance stores."""

from __future__ import annotations

import datetime
import logging
from typing import List, Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from .errors import DuplicateAttendance
from .models import AttendanceEntry, FaceProfile, FaceTemplate
from .types import (
    AttendanceMethod,
    AttendanceRecord,
    AttendanceStatus,
    EncryptedTemplate,
    EnrolledProfile,
)

logger = logging.getLogger(__name__)


def _to_record(entry: AttendanceEntry) -> AttendanceRecord:
    return AttendanceRecord(
        student_id=entry.student_id,
        class_id=entry.class_id,
        date=entry.date,
        status=AttendanceStatus(entry.status),
        method=AttendanceMethod(entry.method),
        check_in_time=entry.check_in_time,
        confidence=entry.confidence,
    )


class DjangoEnrollmentStore:
    """Persist enrollment profiles as :class:`FaceProfile` rows with encrypted templates."""

    def get_profile(self, user_id: str) -> Optional[EnrolledProfile]:
        """Return the profile without templates already flagged for review.

        Flagged templates are only counted so callers can tell a profile that
        awaits review from one that was never enrolled.
        """

        profile = FaceProfile.objects.filter(user_id=user_id).first()
        if profile is None:
            return None

        templates = tuple(
            EncryptedTemplate(
                ciphertext=row.ciphertext,
                iv=row.iv,
                auth_tag=row.auth_tag,
                template_hash=row.template_hash,
            )
            for row in profile.templates.filter(flagged_for_review=False).order_by("position")
        )
        return EnrolledProfile(
            templates=templates,
            average_quality=profile.average_quality,
            flagged_templates=profile.templates.filter(flagged_for_review=True).count(),
        )

    @transaction.atomic
    def put_profile(self, user_id: str, profile: EnrolledProfile) -> None:
        FaceProfile.objects.filter(user_id=user_id).delete()
        row = FaceProfile.objects.create(user_id=user_id, average_quality=profile.average_quality)
        FaceTemplate.objects.bulk_create(
            [
                FaceTemplate(
                    profile=row,
                    position=position,
                    ciphertext=template.ciphertext,
                    iv=template.iv,
                    auth_tag=template.auth_tag,
                    template_hash=template.template_hash,
                )
                for position, template in enumerate(profile.templates)
            ]
        )
        logger.info("Stored %d templates for user %s", len(profile.templates), user_id)

    def delete_profile(self, user_id: str) -> None:
        deleted, _ = FaceProfile.objects.filter(user_id=user_id).delete()
        if deleted:
            logger.info("Deleted face profile for user %s", user_id)

    def flag_template(self, user_id: str, template_hash: str) -> None:
        updated = FaceTemplate.objects.filter(
            profile__user_id=user_id,
            template_hash=template_hash,
            flagged_for_review=False,
        ).update(flagged_for_review=True, flagged_at=timezone.now())
        if updated:
            logger.warning(
                "Flagged %d template(s) %s of user %s for manual review",
                updated,
                template_hash[:12],
                user_id,
            )


class DjangoAttendanceStore:
    """Persist attendance records; uniqueness is enforced by the database."""

    def find_record(
        self, student_id: str, class_id: str, date: datetime.date
    ) -> Optional[AttendanceRecord]:
        entry = (
            AttendanceEntry.objects.active()
            .filter(student_id=student_id, class_id=class_id, date=date)
            .first()
        )
        return _to_record(entry) if entry is not None else None

    def insert_record(self, record: AttendanceRecord) -> AttendanceRecord:
        try:
            with transaction.atomic():
                entry = AttendanceEntry.objects.create(
                    student_id=record.student_id,
                    class_id=record.class_id,
                    date=record.date,
                    status=record.status,
                    method=record.method,
                    check_in_time=record.check_in_time,
                    confidence=record.confidence,
                )
        except IntegrityError as exc:
            existing = self.find_record(record.student_id, record.class_id, record.date)
            raise DuplicateAttendance(existing) from exc
        return _to_record(entry)

    @transaction.atomic
    def supersede_record(self, student_id: str, class_id: str, date: datetime.date) -> int:
        """Retire the active record for the key so a corrected one can be inserted."""

        return (
            AttendanceEntry.objects.active()
            .filter(student_id=student_id, class_id=class_id, date=date)
            .update(superseded=True)
        )

    def list_records(
        self,
        *,
        student_id: Optional[str] = None,
        class_id: Optional[str] = None,
        start: Optional[datetime.date] = None,
        end: Optional[datetime.date] = None,
    ) -> List[AttendanceRecord]:
        queryset = AttendanceEntry.objects.active()
        if student_id is not None:
            queryset = queryset.filter(student_id=student_id)
        if class_id is not None:
            queryset = queryset.filter(class_id=class_id)
        if start is not None:
            queryset = queryset.filter(date__gte=start)
        if end is not None:
            queryset = queryset.filter(date__lte=end)
        return [_to_record(entry) for entry in queryset.order_by("date", "student_id")]


__all__ = ["DjangoAttendanceStore", "DjangoEnrollmentStore"]
