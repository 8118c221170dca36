from django.contrib import admin
from django.urls import path, include
from django.conf.urls.static import static
from django.conf import settings
from django.http import JsonResponse


def root_view(request):
    """Root URL: API info."""
    return JsonResponse({
        'name': 'Bakala API',
        'api': '/api/',
        'admin': '/admin/',
    })


urlpatterns = [
    path('', root_view),
    path('api/', include('dispatch.urls')),
    path('admin/', admin.site.urls),
]
urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
