"""Restaurant API URL configuration. All routes require a restaurant AccountToken."""
from django.urls import path
from dispatch.views.restaurant.order_views import restaurant_order_list, restaurant_order_status
from dispatch.views.token_views import restaurant_fcm_token

urlpatterns = [
    path('fcm-token', restaurant_fcm_token),
    path('orders/', restaurant_order_list),
    path('orders/<str:order_id>/status', restaurant_order_status),
]
