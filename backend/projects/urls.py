from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import DocumentViewSet, MeetingViewSet, ProjectViewSet, TaskViewSet

router = DefaultRouter(trailing_slash=False)
router.register(r"projects", ProjectViewSet, basename="project")
router.register(r"tasks", TaskViewSet, basename="task")
router.register(r"meetings", MeetingViewSet, basename="meeting")
router.register(r"documents", DocumentViewSet, basename="document")

urlpatterns = [
    path("", include(router.urls)),
]
