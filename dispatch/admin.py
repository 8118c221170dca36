from django.contrib import admin

from .models import (
    Zone,
    Customer,
    Restaurant,
    DeliveryPartner,
    AccountToken,
    PushToken,
    Order,
    OrderItem,
    Payment,
    Notification,
)


# --- Inlines ---

class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    readonly_fields = ('created_at',)


# --- Accounts ---

@admin.register(Zone)
class ZoneAdmin(admin.ModelAdmin):
    list_display = ('name', 'is_active', 'point_count', 'created_at')
    list_filter = ('is_active',)
    search_fields = ('name',)
    readonly_fields = ('created_at', 'updated_at')

    def point_count(self, obj):
        return len(obj.boundary or [])
    point_count.short_description = 'Points'


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'phone', 'email', 'created_at')
    search_fields = ('name', 'phone', 'email')
    readonly_fields = ('created_at', 'updated_at')


@admin.register(Restaurant)
class RestaurantAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'phone', 'is_open', 'created_at')
    list_filter = ('is_open',)
    search_fields = ('name', 'phone', 'address')
    readonly_fields = ('created_at', 'updated_at')


@admin.register(DeliveryPartner)
class DeliveryPartnerAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'phone', 'is_available', 'last_updated')
    list_filter = ('is_available', 'zones')
    search_fields = ('name', 'phone')
    filter_horizontal = ('zones',)
    readonly_fields = ('created_at', 'updated_at')


@admin.register(AccountToken)
class AccountTokenAdmin(admin.ModelAdmin):
    list_display = ('id', 'account_type', 'account_id', 'key_preview', 'created_at')
    list_filter = ('account_type', 'created_at')
    search_fields = ('account_id',)
    readonly_fields = ('created_at',)

    def key_preview(self, obj):
        return f'{obj.key[:12]}...' if obj.key and len(obj.key) > 12 else (obj.key or '')
    key_preview.short_description = 'Key'


@admin.register(PushToken)
class PushTokenAdmin(admin.ModelAdmin):
    list_display = ('id', 'account_type', 'account_id', 'platform', 'token_preview', 'created_at')
    list_filter = ('account_type', 'platform')
    search_fields = ('account_id', 'token')
    readonly_fields = ('created_at',)

    def token_preview(self, obj):
        return f'{obj.token[:24]}...' if len(obj.token) > 24 else obj.token
    token_preview.short_description = 'Token'


# --- Orders ---

@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        'order_id', 'customer', 'restaurant', 'delivery_partner', 'status',
        'delivery_status', 'delivery_phase', 'payment_method', 'total', 'created_at',
    )
    list_filter = ('restaurant', 'status', 'delivery_status', 'payment_method')
    search_fields = ('order_id', 'customer__name', 'customer__phone')
    raw_id_fields = ('customer', 'restaurant', 'delivery_partner')
    inlines = (OrderItemInline, PaymentInline)
    readonly_fields = ('created_at', 'updated_at')


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('id', 'title', 'target', 'zone', 'is_active', 'token_count', 'sent_at')
    list_filter = ('target', 'zone', 'is_active')
    search_fields = ('title', 'description')
    readonly_fields = ('token_count', 'sent_at', 'created_at', 'updated_at')
