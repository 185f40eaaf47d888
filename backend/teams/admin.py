from django.contrib import admin

from .models import Team, TeamInvitation, TeamMember


class TeamMemberInline(admin.TabularInline):
    model = TeamMember
    extra = 0


@admin.register(Team)
class TeamAdmin(admin.ModelAdmin):
    list_display = ("name", "manager", "status", "created_at")
    list_filter = ("status",)
    search_fields = ("name", "manager__email")
    inlines = [TeamMemberInline]


@admin.register(TeamInvitation)
class TeamInvitationAdmin(admin.ModelAdmin):
    list_display = ("team", "user", "invited_by", "status", "created_at", "responded_at")
    list_filter = ("status",)
    search_fields = ("team__name", "user__email")
