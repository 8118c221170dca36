"""Customer API URL configuration. All routes require a customer AccountToken."""
from django.urls import path
from dispatch.views.customer.order_views import customer_orders, customer_order_detail
from dispatch.views.token_views import customer_fcm_token

urlpatterns = [
    path('fcm-token', customer_fcm_token),
    path('orders/', customer_orders),
    path('orders/<str:order_id>/', customer_order_detail),
]
