from django.contrib import admin

from .models import User


# -------------------------
# User admin
# -------------------------
@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ("id", "email", "name", "user_type", "wallet_address", "is_staff", "created_at")
    search_fields = ("email", "name", "wallet_address")
    readonly_fields = ("created_at", "updated_at", "last_login")
    list_filter = ("user_type", "is_staff", "is_active")
    ordering = ("-created_at",)

    actions = ["deactivate_users"]

    def deactivate_users(self, request, queryset):
        updated = queryset.update(is_active=False)
        self.message_user(request, f"Deactivated {updated} users")
    deactivate_users.short_description = "Deactivate selected users"
