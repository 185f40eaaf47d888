from django.urls import path, include
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenRefreshView

from .views import (
    ChangePasswordView, LoginView, LogoutView, MeView, RegisterView, UserViewSet,
)

router = DefaultRouter(trailing_slash=False)
router.register(r"users", UserViewSet, basename="user")

auth_urlpatterns = [
    path("register", RegisterView.as_view(), name="auth_register"),
    path("login", LoginView.as_view(), name="auth_login"),
    path("refresh", TokenRefreshView.as_view(), name="auth_refresh"),
    path("me", MeView.as_view(), name="auth_me"),
    path("change-password", ChangePasswordView.as_view(), name="auth_change_password"),
    path("logout", LogoutView.as_view(), name="auth_logout"),
]

urlpatterns = [
    path("auth/", include(auth_urlpatterns)),
    path("", include(router.urls)),
]
