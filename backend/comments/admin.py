from django.contrib import admin

from .models import Comment


@admin.register(Comment)
class CommentAdmin(admin.ModelAdmin):
    list_display = ("entity_type", "entity_id", "user", "parent", "created_at")
    list_filter = ("entity_type",)
    search_fields = ("body", "user__email")
    raw_id_fields = ("parent",)
