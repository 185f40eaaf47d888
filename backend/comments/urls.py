from django.urls import path

from .views import CommentViewSet

comment_create = CommentViewSet.as_view({"post": "create"})
comment_detail = CommentViewSet.as_view({"put": "update", "delete": "destroy"})
entity_thread = CommentViewSet.as_view({"get": "thread"})
user_comments = CommentViewSet.as_view({"get": "by_user"})

# "user/<id>" is listed before the two-segment entity route it would otherwise match
urlpatterns = [
    path("comments", comment_create, name="comment-list"),
    path("comments/user/<str:user_id>", user_comments, name="comment-by-user"),
    path("comments/<str:entity_type>/<str:entity_id>", entity_thread, name="comment-thread"),
    path("comments/<str:pk>", comment_detail, name="comment-detail"),
]
