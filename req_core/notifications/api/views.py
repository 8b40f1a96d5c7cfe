from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from req_core.notifications.api.serializers import NotificationSerializer, UnreadCountSerializer
from req_core.notifications.selectors import notifications_qs, unread_count
from req_core.notifications.services import NotificationService


@extend_schema(tags=["Notifications"])
class NotificationViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    serializer_class = NotificationSerializer

    def get_queryset(self):
        qs = notifications_qs(user_id=self.request.user.id)
        is_read = self.request.query_params.get("is_read")
        if is_read in ("true", "false"):
            qs = qs.filter(is_read=(is_read == "true"))
        requisition_id = self.request.query_params.get("requisition_id")
        if requisition_id:
            qs = qs.filter(related_requisition_id=requisition_id)
        return qs.order_by("-created_at", "-id")

    @extend_schema(request=None, responses={200: NotificationSerializer})
    @action(methods=["POST"], detail=True, url_path="mark-read")
    def mark_read(self, request, pk=None):
        notif = NotificationService.mark_read(user_id=request.user.id, notification_id=pk)
        return Response(NotificationSerializer(notif).data, status=status.HTTP_200_OK)

    @extend_schema(request=None, responses={200: UnreadCountSerializer})
    @action(methods=["POST"], detail=False, url_path="mark-all-read")
    def mark_all_read(self, request):
        NotificationService.mark_all_read(user_id=request.user.id)
        return Response({"unread": 0}, status=status.HTTP_200_OK)

    @extend_schema(responses={200: UnreadCountSerializer})
    @action(methods=["GET"], detail=False, url_path="unread-count")
    def unread_count(self, request):
        return Response({"unread": unread_count(user_id=request.user.id)})
