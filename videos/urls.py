from django.urls import path

from .views import (
    DispatchWebhookView,
    JobDetailView,
    NotifyView,
    ResetJobView,
    SubmitJobView,
    SweepView,
)

urlpatterns = [
    path("jobs/", SubmitJobView.as_view(), name="submit_job"),
    path("jobs/<uuid:job_id>/", JobDetailView.as_view(), name="job_detail"),
    path("jobs/<uuid:job_id>/reset/", ResetJobView.as_view(), name="reset_job"),
    path("dispatch/", DispatchWebhookView.as_view(), name="dispatch_webhook"),
    path("notify/", NotifyView.as_view(), name="notify"),
    path("sweep/", SweepView.as_view(), name="sweep"),
]
