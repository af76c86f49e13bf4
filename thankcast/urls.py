from django.contrib import admin
from django.urls import include, path

from videos.views import track_video_view

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("videos.urls")),
    # recipient-facing links live outside /api/ so they stay short
    path("track-video-view/", track_video_view, name="track_video_view_missing"),
    path("track-video-view/<str:token>", track_video_view, name="track_video_view"),
]
