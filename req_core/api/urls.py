# req_core/api/urls.py
from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter

from req_core.audit.api.views import AuditLogViewSet
from req_core.iam.api.auth import LoginView, LogoutView, RefreshView
from req_core.iam.api.me import MeView
from req_core.iam.api.stamp import SignatureStampView
from req_core.notifications.api.views import NotificationViewSet
from req_core.requisitions.api.views import PendingSignatureViewSet, RequisitionViewSet

router = DefaultRouter()

router.register(r"requisitions", RequisitionViewSet, basename="requisitions")
router.register(r"signatures/pending", PendingSignatureViewSet, basename="pending-signatures")
router.register(r"audit/entries", AuditLogViewSet, basename="audit-entries")
router.register(r"notifications", NotificationViewSet, basename="notifications")

urlpatterns = [
    # Auth + /me
    path("auth/login/", LoginView.as_view(), name="login"),
    path("auth/refresh/", RefreshView.as_view(), name="refresh"),
    path("auth/logout/", LogoutView.as_view(), name="logout"),
    path("me/", MeView.as_view(), name="me"),
    path("signatures/stamp/", SignatureStampView.as_view(), name="signature-stamp"),

    # Router URLs last (so explicit paths win if ever overlapping)
    *router.urls,
]
