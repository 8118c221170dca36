# URL packages - include customer_urls, restaurant_urls, etc.
from django.urls import path, include

urlpatterns = [
    path('customer/', include('dispatch.urls.customer_urls')),
    path('restaurant/', include('dispatch.urls.restaurant_urls')),
    path('delivery/', include('dispatch.urls.delivery_urls')),
    path('admin/', include('dispatch.urls.admin_urls')),
]
