# req_core/iam/api/me.py

from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from req_core.iam.api.schema_serializers import MeResponseSerializer
from req_core.iam.identity import actor_for_user


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(responses={200: MeResponseSerializer}, tags=["IAM"])
    def get(self, request):
        actor = actor_for_user(request.user)
        return Response(
            {
                "id": actor.user_id,
                "username": actor.username,
                "email": getattr(request.user, "email", "") or "",
                "display_name": actor.display_name,
                "role": actor.role,
                "department": actor.department,
                "is_second_auditor": actor.is_second_auditor,
            },
            status=status.HTTP_200_OK,
        )
