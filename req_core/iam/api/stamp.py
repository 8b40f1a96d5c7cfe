# req_core/iam/api/stamp.py

from __future__ import annotations

import logging

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from req_core.iam.api.schema_serializers import SignatureArtifactSerializer, StampRequestSerializer
from req_core.iam.signatures import mint_stamp

logger = logging.getLogger(__name__)


class SignatureStampView(APIView):
    """
    POST /signatures/stamp/ {password}
    Re-verifies the password and returns a STAMP artifact usable
    to confirm one pending action.
    """
    permission_classes = [IsAuthenticated]

    @extend_schema(request=StampRequestSerializer, responses={201: SignatureArtifactSerializer}, tags=["IAM"])
    def post(self, request):
        ser = StampRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        artifact = mint_stamp(request.user, ser.validated_data["password"])
        logger.info("Signature stamp minted for user %s", request.user.pk)
        return Response(artifact.as_dict(), status=status.HTTP_201_CREATED)
