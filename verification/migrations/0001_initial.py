import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="FaceProfile",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("user_id", models.CharField(max_length=150, unique=True)),
                (
                    "average_quality",
                    models.FloatField(
                        default=0.0,
                        help_text="Mean quality score of the images used at enrollment",
                        validators=[
                            django.core.validators.MinValueValidator(0.0),
                            django.core.validators.MaxValueValidator(1.0),
                        ],
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Face Profile",
                "verbose_name_plural": "Face Profiles",
                "ordering": ["user_id"],
            },
        ),
        migrations.CreateModel(
            name="AttendanceEntry",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("student_id", models.CharField(max_length=150)),
                ("class_id", models.CharField(max_length=150)),
                ("date", models.DateField()),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PRESENT", "Present"),
                            ("LATE", "Late"),
                            ("ABSENT", "Absent"),
                            ("EXCUSED", "Excused"),
                            ("PENDING", "Pending"),
                        ],
                        default="PENDING",
                        max_length=16,
                    ),
                ),
                (
                    "method",
                    models.CharField(
                        choices=[
                            ("FACE_RECOGNITION", "Face recognition"),
                            ("QR_CODE", "QR code"),
                            ("MANUAL", "Manual"),
                            ("AUTO_MARKED", "Auto marked"),
                        ],
                        default="FACE_RECOGNITION",
                        max_length=32,
                    ),
                ),
                ("check_in_time", models.DateTimeField(blank=True, null=True)),
                (
                    "confidence",
                    models.FloatField(
                        blank=True,
                        null=True,
                        validators=[
                            django.core.validators.MinValueValidator(0.0),
                            django.core.validators.MaxValueValidator(1.0),
                        ],
                    ),
                ),
                ("superseded", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
            ],
            options={
                "verbose_name": "Attendance Entry",
                "verbose_name_plural": "Attendance Entries",
                "ordering": ["-date", "student_id"],
                "indexes": [
                    models.Index(fields=["class_id", "date"], name="attendance_class_date_idx")
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("superseded", False)),
                        fields=("student_id", "class_id", "date"),
                        name="unique_active_attendance",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="FaceTemplate",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("position", models.PositiveIntegerField()),
                ("ciphertext", models.TextField()),
                ("iv", models.CharField(max_length=32)),
                ("auth_tag", models.CharField(max_length=32)),
                ("template_hash", models.CharField(db_index=True, max_length=64)),
                ("flagged_for_review", models.BooleanField(default=False)),
                ("flagged_at", models.DateTimeField(blank=True, null=True)),
                (
                    "profile",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="templates",
                        to="verification.faceprofile",
                    ),
                ),
            ],
            options={
                "verbose_name": "Face Template",
                "verbose_name_plural": "Face Templates",
                "ordering": ["profile", "position"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("profile", "position"), name="unique_template_position"
                    )
                ],
            },
        ),
    ]
