from django.urls import path
from .views import (
    region_list_create, region_detail,
    district_list_create, district_detail,
    branch_list_create, branch_detail, branch_settings,
)

urlpatterns = [
    path('regions/', region_list_create, name='region-list-create'),
    path('regions/<int:pk>/', region_detail, name='region-detail'),
    path('districts/', district_list_create, name='district-list-create'),
    path('districts/<int:pk>/', district_detail, name='district-detail'),
    path('branches/', branch_list_create, name='branch-list-create'),
    path('branches/<int:pk>/', branch_detail, name='branch-detail'),
    path('branches/<int:pk>/settings/', branch_settings, name='branch-settings'),
]
