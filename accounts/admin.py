from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import AuthSession, College, Membership, User


class MembershipInline(admin.TabularInline):
    model = Membership
    extra = 0
    raw_id_fields = ("college",)
    fields = ("college", "role", "created_at")
    readonly_fields = ("created_at",)


class AuthSessionInline(admin.TabularInline):
    model = AuthSession
    extra = 0
    can_delete = False
    readonly_fields = (
        "college", "expires_at", "ip_address", "user_agent",
        "is_test_locked", "active_test_attempt", "created_at",
    )
    fields = readonly_fields


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ("username", "email", "is_super_admin", "is_staff", "is_active", "date_joined")
    list_filter = ("is_super_admin", "is_staff", "is_superuser", "is_active")
    search_fields = ("username", "email", "first_name", "last_name")
    ordering = ("-date_joined",)
    inlines = [MembershipInline, AuthSessionInline]

    fieldsets = BaseUserAdmin.fieldsets + (
        ("Platform", {"fields": ("is_super_admin",)}),
    )


@admin.register(College)
class CollegeAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "is_active", "created_at")
    list_filter = ("is_active",)
    search_fields = ("name", "slug")
    prepopulated_fields = {"slug": ("name",)}


@admin.register(Membership)
class MembershipAdmin(admin.ModelAdmin):
    list_display = ("user", "college", "role", "created_at")
    list_filter = ("role", "college")
    search_fields = ("user__username", "user__email", "college__name")
    raw_id_fields = ("user", "college")


@admin.register(AuthSession)
class AuthSessionAdmin(admin.ModelAdmin):
    list_display = ("user", "college", "expires_at", "is_test_locked", "active_test_attempt", "ip_address", "created_at")
    list_filter = ("is_test_locked",)
    search_fields = ("user__username", "user__email", "ip_address")
    raw_id_fields = ("user", "college", "active_test_attempt")
    readonly_fields = ("created_at", "updated_at")
