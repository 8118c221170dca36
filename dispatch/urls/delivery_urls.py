"""Delivery partner API URL configuration. All routes require a delivery AccountToken."""
from django.urls import path
from dispatch.views.delivery.order_views import (
    delivery_order_list,
    delivery_order_detail,
    delivery_order_accept,
    delivery_order_reached_pickup,
    delivery_order_picked_up,
    delivery_order_reached_drop,
    delivery_order_complete,
    delivery_order_cancel,
)
from dispatch.views.token_views import delivery_fcm_token

urlpatterns = [
    path('fcm-token', delivery_fcm_token),
    path('orders/', delivery_order_list),
    path('orders/<str:order_id>/', delivery_order_detail),
    path('orders/<str:order_id>/accept', delivery_order_accept),
    path('orders/<str:order_id>/reached-pickup', delivery_order_reached_pickup),
    path('orders/<str:order_id>/picked-up', delivery_order_picked_up),
    path('orders/<str:order_id>/reached-drop', delivery_order_reached_drop),
    path('orders/<str:order_id>/complete', delivery_order_complete),
    path('orders/<str:order_id>/cancel', delivery_order_cancel),
]
