"""
=============================================================================
GATEPASS — admin.py
=============================================================================
Django Admin for the gate office.
Features:
  - Users with role / provider subject
  - Credentials and access events are read-only: state only changes through
    the validation protocol, events are immutable
  - Colour-coded credential state badges
  - CSV export of selected rows
=============================================================================
"""

import csv

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.http import HttpResponse
from django.utils.html import format_html

from .models import AccessCredential, AccessEvent, AuditLog, User


# =============================================================================
# UTILITY: CSV EXPORT ACTION
# =============================================================================

SECRET_FIELDS = ("password", "token")


def export_as_csv(modeladmin, request, queryset):
    """Generic action to export selected records as CSV."""
    meta = modeladmin.model._meta
    field_names = [field.name for field in meta.fields if field.name not in SECRET_FIELDS]

    response = HttpResponse(content_type="text/csv")
    response["Content-Disposition"] = f"attachment; filename={meta.model_name}_export.csv"

    writer = csv.writer(response)
    writer.writerow(field_names)
    for obj in queryset:
        writer.writerow([getattr(obj, field) for field in field_names])
    return response

export_as_csv.short_description = "Export selected records as CSV"


STATE_COLORS = {
    AccessCredential.UNUSED:  "#10b981",
    AccessCredential.USED:    "#6b7280",
    AccessCredential.EXPIRED: "#9ca3af",
}


def colored_state(state):
    color = STATE_COLORS.get(state, "#6b7280")
    return format_html(
        '<span style="background:{};color:#fff;padding:2px 8px;border-radius:4px;'
        'font-size:11px;font-weight:600;">{}</span>',
        color, state.upper(),
    )


class ReadOnlyAdmin(admin.ModelAdmin):
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# =============================================================================
# 1. USERS
# =============================================================================

@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ("get_full_name", "username", "email", "role", "role_selected", "is_active")
    list_filter = ("role", "role_selected", "is_active")
    search_fields = ("first_name", "last_name", "email", "username", "subject")
    readonly_fields = ("id", "subject", "created_at", "updated_at", "last_login", "date_joined")
    ordering = ("last_name", "first_name")
    actions = [export_as_csv]

    fieldsets = BaseUserAdmin.fieldsets + (
        ("GatePass", {
            "fields": ("id", "role", "role_selected", "subject", "profile_image_url",
                       "created_at", "updated_at")
        }),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ("GatePass", {
            "fields": ("role",)
        }),
    )

    def get_full_name(self, obj):
        return obj.get_full_name() or obj.username
    get_full_name.short_description = "Name"


# =============================================================================
# 2. ACCESS CREDENTIALS
# =============================================================================

class AccessEventInline(admin.StackedInline):
    model = AccessEvent
    can_delete = False
    extra = 0
    max_num = 0
    fields = ("guard", "entry_mode", "vehicle_plates", "note", "created_at")
    readonly_fields = fields


@admin.register(AccessCredential)
class AccessCredentialAdmin(ReadOnlyAdmin):
    list_display = ("visitor_name", "visitor_type", "issuer", "colored_state",
                    "created_at", "expires_at", "consumed_at")
    list_filter = ("state", "visitor_type")
    search_fields = ("visitor_name", "password", "issuer__first_name",
                     "issuer__last_name", "issuer__username")
    readonly_fields = ("id", "token", "password", "visitor_name", "visitor_type", "note",
                       "issuer", "state", "created_at", "updated_at", "expires_at", "consumed_at")
    date_hierarchy = "created_at"
    inlines = [AccessEventInline]
    actions = [export_as_csv]

    def colored_state(self, obj):
        return colored_state(obj.effective_state())
    colored_state.short_description = "State"


# =============================================================================
# 3. ACCESS EVENTS
# =============================================================================

@admin.register(AccessEvent)
class AccessEventAdmin(ReadOnlyAdmin):
    list_display = ("credential", "guard", "entry_mode", "vehicle_plates", "created_at")
    list_filter = ("entry_mode",)
    search_fields = ("credential__visitor_name", "guard__first_name", "guard__last_name",
                     "vehicle_plates")
    readonly_fields = ("id", "credential", "guard", "entry_mode", "vehicle_plates", "note",
                       "created_at", "updated_at")
    date_hierarchy = "created_at"
    actions = [export_as_csv]


# =============================================================================
# 4. AUDIT LOG
# =============================================================================

@admin.register(AuditLog)
class AuditLogAdmin(ReadOnlyAdmin):
    list_display = ("action", "model_name", "object_id", "user", "ip_address", "created_at")
    list_filter = ("action", "model_name")
    search_fields = ("description", "model_name", "object_id",
                     "user__first_name", "user__last_name", "ip_address")
    readonly_fields = ("id", "created_at", "updated_at", "user", "action",
                       "model_name", "object_id", "description", "ip_address", "user_agent")
    date_hierarchy = "created_at"
