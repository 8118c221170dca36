"""Admin API URL configuration. All routes require a superuser DRF token."""
from django.urls import path
from dispatch.views.admin.notification_views import (
    admin_notification_send,
    admin_notification_list,
    admin_notification_delete,
    admin_notification_toggle_status,
)
from dispatch.views.admin.order_views import admin_order_assign

urlpatterns = [
    path('notifications/send', admin_notification_send),
    path('notifications/', admin_notification_list),
    path('notifications/<int:pk>/', admin_notification_delete),
    path('notifications/<int:pk>/status', admin_notification_toggle_status),
    path('orders/<str:order_id>/assign', admin_order_assign),
]
