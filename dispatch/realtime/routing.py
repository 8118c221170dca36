from django.urls import path, re_path

from dispatch.realtime import consumers

websocket_urlpatterns = [
    path('ws/restaurant/<str:restaurant_id>/', consumers.RestaurantRoomConsumer.as_asgi()),
    re_path(r'^ws/orders/(?P<order_id>[\w\-]+)/$', consumers.OrderTrackingConsumer.as_asgi()),
    path('ws/admin/orders/', consumers.AdminRoomConsumer.as_asgi()),
]
