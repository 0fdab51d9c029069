from django.urls import path
from . import views
from .views import AuthenticationURL, CheckAuthentication

urlpatterns = [
    path("auth-url", AuthenticationURL.as_view(), name="auth-url"),
    path("redirect/", views.spotify_redirect, name="redirect"),
    path("check-auth", CheckAuthentication.as_view(), name="check-auth"),
    path("logout", views.logout, name="logout"),
    path("api/dashboard", views.dashboard, name="dashboard"),
    path("api/user/settings", views.user_settings, name="user_settings"),
    path("api/user/sync", views.manual_sync, name="manual_sync"),
    path("api/user/<str:identifier>", views.public_profile, name="public_profile"),
    path("api/cron/sync", views.cron_sync, name="cron_sync"),
    path("api/follow", views.follow, name="follow"),
    path("api/follow/requests", views.follow_requests, name="follow_requests"),
    path("api/users/search", views.search_users, name="search_users"),
    path("api/users/recent", views.recent_users, name="recent_users"),
]
