from django.urls import path
from .views import (
    CustomTokenObtainPairView, CustomTokenRefreshView, register, logout, user_me, user_me_photo,
    branch_options, set_branch_context,
    staff_list_create, staff_detail,
    activity_log_list, activity_log_detail,
)

urlpatterns = [
    # Auth endpoints
    path('auth/register/', register, name='register'),
    path('auth/login/', CustomTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/refresh/', CustomTokenRefreshView.as_view(), name='token_refresh'),
    path('auth/logout/', logout, name='logout'),
    path('auth/me/', user_me, name='user-me'),
    path('auth/me/photo/', user_me_photo, name='user-me-photo'),
    path('auth/branches/', branch_options, name='branch-options'),
    path('auth/branch-context/', set_branch_context, name='branch-context'),

    # Staff endpoints
    path('staff/', staff_list_create, name='staff-list-create'),
    path('staff/<int:pk>/', staff_detail, name='staff-detail'),

    # ActivityLog endpoints
    path('activity-logs/', activity_log_list, name='activity-log-list'),
    path('activity-logs/<int:pk>/', activity_log_detail, name='activity-log-detail'),
]
