from django.contrib import admin

from chat.models import Conversation


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    list_display = ("id", "job_request", "seeker", "provider", "is_active", "created_at")
    list_filter = ("is_active",)
    raw_id_fields = ("job_request", "seeker", "provider")
