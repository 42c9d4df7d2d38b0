"""Database models for the verification app."""

from __future__ import annotations

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q

from .types import AttendanceMethod, AttendanceStatus



class FaceProfile(models.Model):
    """Enrollment profile owning one encrypted template per enrollment image."""

    user_id = models.CharField(max_length=150, unique=True)
    average_quality = models.FloatField(
        default=0.0,
        validators=[MinValueValidator(0.0), MaxValueValidator(1.0)],
        help_text="Mean quality score of the images used at enrollment",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["user_id"]
        verbose_name = "Face Profile"
        verbose_name_plural = "Face Profiles"

    def __str__(self) -> str:
        return f"{self.user_id} ({self.average_quality:.2f})"


class FaceTemplateQuerySet(models.QuerySet["FaceTemplate"]):
    def flagged(self) -> "FaceTemplateQuerySet":
        """Return templates awaiting manual integrity review."""

        return self.filter(flagged_for_review=True)


class FaceTemplate(models.Model):
    """AES-256-GCM encrypted descriptor; every binary field is hex-encoded."""

    profile = models.ForeignKey(FaceProfile, on_delete=models.CASCADE, related_name="templates")
    position = models.PositiveIntegerField()
    ciphertext = models.TextField()
    iv = models.CharField(max_length=32)
    auth_tag = models.CharField(max_length=32)
    template_hash = models.CharField(max_length=64, db_index=True)
    flagged_for_review = models.BooleanField(default=False)
    flagged_at = models.DateTimeField(null=True, blank=True)

    objects = FaceTemplateQuerySet.as_manager()

    class Meta:
        ordering = ["profile", "position"]
        constraints = [
            models.UniqueConstraint(
                fields=["profile", "position"], name="unique_template_position"
            ),
        ]
        verbose_name = "Face Template"
        verbose_name_plural = "Face Templates"

    def __str__(self) -> str:
        flag = " [flagged]" if self.flagged_for_review else ""
        return f"{self.profile.user_id}#{self.position} {self.template_hash[:12]}{flag}"


class AttendanceEntryQuerySet(models.QuerySet["AttendanceEntry"]):
    def active(self) -> "AttendanceEntryQuerySet":
        """Return only records that have not been superseded."""

        return self.filter(superseded=False)


class AttendanceEntry(models.Model):
    """Persisted attendance record.

    At most one non-superseded row may exist per student, class and date;
    the partial unique constraint enforces this atomically in the database.
    """

    student_id = models.CharField(max_length=150)
    class_id = models.CharField(max_length=150)
    date = models.DateField()
    status = models.CharField(
        max_length=16,
        choices=AttendanceStatus.choices,
        default=AttendanceStatus.PENDING,
    )
    method = models.CharField(
        max_length=32,
        choices=AttendanceMethod.choices,
        default=AttendanceMethod.FACE_RECOGNITION,
    )
    check_in_time = models.DateTimeField(null=True, blank=True)
    confidence = models.FloatField(
        null=True,
        blank=True,
        validators=[MinValueValidator(0.0), MaxValueValidator(1.0)],
    )
    superseded = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    objects = AttendanceEntryQuerySet.as_manager()

    class Meta:
        ordering = ["-date", "student_id"]
        constraints = [
            models.UniqueConstraint(
                fields=["student_id", "class_id", "date"],
                condition=Q(superseded=False),
                name="unique_active_attendance",
            ),
        ]
        indexes = [
            models.Index(fields=["class_id", "date"], name="attendance_class_date_idx"),
        ]
        verbose_name = "Attendance Entry"
        verbose_name_plural = "Attendance Entries"

    def __str__(self) -> str:
        return f"{self.student_id} {self.class_id} {self.date:%Y-%m-%d} {self.status}"
