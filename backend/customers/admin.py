from django.contrib import admin

from .models import (
    Customer,
    LoyaltyAccount,
    LoyaltyTransaction,
    TopupOffer,
    Wallet,
    WalletTransaction,
)


class LoyaltyTransactionInline(admin.TabularInline):
    model = LoyaltyTransaction
    extra = 0
    can_delete = False
    readonly_fields = ["transaction_type", "points", "order", "description", "created_at"]

    def has_add_permission(self, request, obj=None):
        return False


class WalletTransactionInline(admin.TabularInline):
    model = WalletTransaction
    extra = 0
    can_delete = False
    readonly_fields = [
        "transaction_type",
        "status",
        "amount",
        "balance_before",
        "balance_after",
        "order",
        "points_used",
        "approved_by",
        "created_at",
    ]

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ["phone", "name", "email", "created_at"]
    search_fields = ["phone", "name", "email"]
    readonly_fields = ["id", "created_at", "updated_at"]


@admin.register(LoyaltyAccount)
class LoyaltyAccountAdmin(admin.ModelAdmin):
    list_display = ["customer", "points", "earned_points", "redeemed_points", "updated_at"]
    search_fields = ["customer__phone", "customer__name"]
    # Balances only move through LoyaltyService.
    readonly_fields = ["points", "earned_points", "redeemed_points", "created_at", "updated_at"]
    inlines = [LoyaltyTransactionInline]


@admin.register(Wallet)
class WalletAdmin(admin.ModelAdmin):
    list_display = ["customer", "balance", "updated_at"]
    search_fields = ["customer__phone", "customer__name"]
    readonly_fields = ["balance", "created_at", "updated_at"]
    inlines = [WalletTransactionInline]


@admin.register(TopupOffer)
class TopupOfferAdmin(admin.ModelAdmin):
    list_display = ["amount", "points", "bonus_points", "is_active", "display_order"]
    list_filter = ["is_active"]
    list_editable = ["is_active", "display_order"]
