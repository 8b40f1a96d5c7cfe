# req_core/audit/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from req_core.audit.api.serializers import AuditLogEntrySerializer
from req_core.audit.models import AuditLogEntry
from req_core.audit.selectors import list_audit_entries
from req_core.common.errors import ValidationError


class AuditLogViewSet(viewsets.GenericViewSet):
    """
    Read-only ledger listing across requisitions.
    """
    permission_classes = [IsAuthenticated]
    serializer_class = AuditLogEntrySerializer
    queryset = AuditLogEntry.objects.none()

    @extend_schema(
        tags=["Audit"],
        responses={200: AuditLogEntrySerializer(many=True)},
        parameters=[
            OpenApiParameter(name="requisition", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="action", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="actor_user_id", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(
                name="limit",
                type=OpenApiTypes.INT,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Max records to return (default 200, max 500).",
            ),
        ],
    )
    def list(self, request):
        actor_raw = request.query_params.get("actor_user_id")
        actor_user_id = None
        if actor_raw:
            try:
                actor_user_id = int(actor_raw)
            except ValueError:
                raise ValidationError("Invalid actor_user_id (int expected).")

        qs = list_audit_entries(
            requisition_id=request.query_params.get("requisition") or None,
            action=request.query_params.get("action") or None,
            actor_user_id=actor_user_id,
        )

        try:
            limit_n = int(request.query_params.get("limit") or 200)
        except ValueError:
            limit_n = 200
        limit_n = max(1, min(limit_n, 500))

        return Response(AuditLogEntrySerializer(qs[:limit_n], many=True).data, status=status.HTTP_200_OK)
