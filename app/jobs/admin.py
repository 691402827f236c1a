from django.contrib import admin

from jobs.models import JobRequest


@admin.register(JobRequest)
class JobRequestAdmin(admin.ModelAdmin):
    list_display = ("id", "title", "seeker", "status", "assigned_to", "created_at")
    list_filter = ("status", "currency")
    search_fields = ("title", "seeker__email")
    raw_id_fields = ("seeker", "assigned_to")
