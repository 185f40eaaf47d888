import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Log",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("action", models.CharField(max_length=100)),
                ("description", models.TextField(blank=True, null=True)),
                ("entity_type", models.CharField(max_length=50)),
                ("entity_id", models.CharField(max_length=120)),
                ("old_value", models.JSONField(blank=True, null=True)),
                ("new_value", models.JSONField(blank=True, null=True)),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True)),
                ("user_agent", models.CharField(blank=True, max_length=500, null=True)),
                ("timestamp", models.DateTimeField(default=django.utils.timezone.now)),
                ("performed_by", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="audit_logs", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-timestamp", "-id"],
                "indexes": [
                    models.Index(fields=["entity_type", "entity_id"], name="log_entity_idx"),
                    models.Index(fields=["performed_by"], name="log_actor_idx"),
                    models.Index(fields=["action"], name="log_action_idx"),
                    models.Index(fields=["timestamp"], name="log_timestamp_idx"),
                ],
            },
        ),
    ]
