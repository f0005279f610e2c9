from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    User admin configuration
    """
    list_display = (
        'username', 'email', 'fullname', 'is_active', 'is_staff', 'created_at'
    )
    list_filter = ('is_active', 'is_staff', 'is_superuser', 'created_at')
    search_fields = ('username', 'email', 'fullname')
    ordering = ('-created_at',)
    readonly_fields = ('created_at', 'updated_at')

    # refresh_token stays out of the admin forms
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Profile', {
            'fields': ('fullname', 'avatar', 'cover_image')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at')
        }),
    )

    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ('Profile', {
            'fields': ('email', 'fullname', 'avatar', 'cover_image')
        }),
    )

    @admin.action(description="Revoke refresh tokens (force re-login)")
    def revoke_refresh_tokens(self, request, queryset):
        updated = queryset.update(refresh_token="")
        self.message_user(request, f"Revoked refresh tokens for {updated} user(s).")

    actions = ['revoke_refresh_tokens']
