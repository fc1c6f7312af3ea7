import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Session",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=200)),
                ("title_en", models.CharField(blank=True, default="", max_length=200)),
                ("description", models.TextField(blank=True, default="")),
                ("venue", models.CharField(blank=True, default="", max_length=300)),
                ("starts_at", models.DateTimeField()),
                ("duration_minutes", models.PositiveIntegerField(default=60)),
                ("capacity", models.PositiveIntegerField()),
                ("current_registrations", models.PositiveIntegerField(default=0)),
                ("price", models.DecimalField(decimal_places=2, max_digits=10)),
                ("age_min", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("age_max", models.PositiveSmallIntegerField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("completed", "Completed"), ("cancelled", "Cancelled")],
                        default="active",
                        max_length=20,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["starts_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("capacity__gt", 0)),
                        name="catalog_session_capacity_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("current_registrations__gte", 0)),
                        name="catalog_session_registrations_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("current_registrations__lte", models.F("capacity"))),
                        name="catalog_session_registrations_within_capacity",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="CharacterRole",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("key", models.SlugField()),
                ("name", models.CharField(max_length=100)),
                ("name_en", models.CharField(blank=True, default="", max_length=100)),
                ("image_url", models.URLField(blank=True, default="", max_length=500)),
                ("capacity", models.PositiveIntegerField(default=4)),
                ("order", models.PositiveIntegerField(default=0)),
                (
                    "session",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="roles",
                        to="booking_catalog.session",
                    ),
                ),
            ],
            options={
                "ordering": ["order", "key"],
                "unique_together": {("session", "key")},
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("capacity__gt", 0)),
                        name="catalog_characterrole_capacity_positive",
                    ),
                ],
            },
        ),
    ]
