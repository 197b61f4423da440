import uuid

import django.contrib.auth.models
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import gatepass.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("auth", "0012_alter_user_first_name_max_length"),
    ]

    operations = [
        migrations.CreateModel(
            name="User",
            fields=[
                ("password", models.CharField(max_length=128, verbose_name="password")),
                ("last_login", models.DateTimeField(blank=True, null=True, verbose_name="last login")),
                ("is_superuser", models.BooleanField(
                    default=False,
                    help_text="Designates that this user has all permissions without explicitly assigning them.",
                    verbose_name="superuser status",
                )),
                ("first_name", models.CharField(blank=True, max_length=150, verbose_name="first name")),
                ("last_name", models.CharField(blank=True, max_length=150, verbose_name="last name")),
                ("email", models.EmailField(blank=True, max_length=254, verbose_name="email address")),
                ("is_staff", models.BooleanField(
                    default=False,
                    help_text="Designates whether the user can log into this admin site.",
                    verbose_name="staff status",
                )),
                ("is_active", models.BooleanField(
                    default=True,
                    help_text="Designates whether this user should be treated as active. "
                              "Unselect this instead of deleting accounts.",
                    verbose_name="active",
                )),
                ("date_joined", models.DateTimeField(default=django.utils.timezone.now, verbose_name="date joined")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("username", models.CharField(
                    blank=True, help_text="Login handle. Empty for federated users.",
                    max_length=150, null=True, unique=True,
                )),
                ("subject", models.CharField(
                    blank=True, help_text="Identity provider subject claim (federated users only)",
                    max_length=255, null=True, unique=True,
                )),
                ("role", models.CharField(
                    choices=[("resident", "Resident"), ("guard", "Guard"), ("administrator", "Administrator")],
                    default="resident", max_length=20,
                )),
                ("role_selected", models.BooleanField(
                    default=False, help_text="Role has been fixed (self-service selection is one-shot)",
                )),
                ("profile_image_url", models.URLField(blank=True, max_length=500)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("groups", models.ManyToManyField(
                    blank=True,
                    help_text="The groups this user belongs to. A user will get all permissions "
                              "granted to each of their groups.",
                    related_name="user_set", related_query_name="user", to="auth.group",
                    verbose_name="groups",
                )),
                ("user_permissions", models.ManyToManyField(
                    blank=True, help_text="Specific permissions for this user.",
                    related_name="user_set", related_query_name="user", to="auth.permission",
                    verbose_name="user permissions",
                )),
            ],
            options={
                "ordering": ["last_name", "first_name"],
            },
            managers=[
                ("objects", django.contrib.auth.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name="AccessCredential",
            fields=[
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("token", models.CharField(max_length=64, unique=True)),
                ("password", models.CharField(max_length=9, unique=True)),
                ("visitor_name", models.CharField(max_length=200)),
                ("visitor_type", models.CharField(
                    choices=[("guest", "Guest"), ("supplier", "Supplier"), ("service_provider", "Service provider")],
                    max_length=20,
                )),
                ("note", models.TextField(blank=True)),
                ("expires_at", models.DateTimeField(default=gatepass.models.default_expiry)),
                ("state", models.CharField(
                    choices=[("unused", "Unused"), ("used", "Used"), ("expired", "Expired")],
                    default="unused", max_length=10,
                )),
                ("consumed_at", models.DateTimeField(blank=True, null=True)),
                ("issuer", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="issued_credentials", to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["issuer", "created_at"], name="gatepass_ac_issuer__1d6c2b_idx"),
                    models.Index(fields=["state", "expires_at"], name="gatepass_ac_state_4f0a9e_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="AccessEvent",
            fields=[
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("entry_mode", models.CharField(
                    choices=[("on_foot", "On foot"), ("vehicle", "Vehicle")], max_length=10,
                )),
                ("vehicle_plates", models.CharField(blank=True, max_length=20, null=True)),
                ("note", models.TextField(blank=True)),
                ("credential", models.OneToOneField(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="access_event", to="gatepass.accesscredential",
                )),
                ("guard", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="access_events", to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("action", models.CharField(
                    choices=[
                        ("CREATE", "Created"), ("UPDATE", "Updated"), ("LOGIN", "Login"),
                        ("LOGOUT", "Logout"), ("CHECKIN", "Checked In"),
                        ("ROLE_SELECTED", "Role Selected"), ("PASSWORD_RESET", "Password Reset"),
                    ],
                    max_length=30,
                )),
                ("model_name", models.CharField(help_text="Django model name", max_length=100)),
                ("object_id", models.CharField(blank=True, max_length=100)),
                ("description", models.TextField()),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True)),
                ("user_agent", models.TextField(blank=True)),
                ("user", models.ForeignKey(
                    null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["model_name", "object_id"], name="gatepass_au_model_n_8b3e51_idx"),
                ],
            },
        ),
    ]
