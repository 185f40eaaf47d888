from django.contrib import admin

from .models import Log


@admin.register(Log)
class LogAdmin(admin.ModelAdmin):
    """
    Read-only view over the audit trail.
    """
    list_display = ("timestamp", "action", "entity_type", "entity_id", "performed_by", "ip_address")
    list_filter = ("action", "entity_type")
    search_fields = ("action", "entity_type", "entity_id", "description")
    ordering = ("-timestamp",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
