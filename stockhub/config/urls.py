"""
URL configuration for the StockHub project.

Every app mounts its API under /api/v1/. Unknown routes answer with a JSON 404.
"""
from django.contrib import admin
from django.urls import path, include, re_path
from django.conf import settings
from django.views.static import serve

admin.site.site_header = "StockHub Administration"
admin.site.site_title = "StockHub Admin Portal"
admin.site.index_title = "Branch inventory administration"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('stockhub.core.urls')),
    path('api/v1/', include('stockhub.locations.urls')),
    path('api/v1/', include('stockhub.inventory.urls')),
    path('api/v1/', include('stockhub.events.urls')),
    path('api/v1/', include('stockhub.notifications.urls')),
    path('api/v1/', include('stockhub.reports.urls')),
    re_path(r'^media/(?P<path>.*)$', serve, {'document_root': settings.MEDIA_ROOT}),
]

handler404 = 'stockhub.core.views.not_found'
