# req_core/requisitions/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from req_core.common.permissions import RequisitionPermission
from req_core.iam.identity import actor_for_user
from req_core.iam.signatures import SignatureArtifact
from req_core.payments.services import PaymentService
from req_core.requisitions import gate
from req_core.requisitions.api.serializers import (
    ActionRequestSerializer,
    AttachmentRefSerializer,
    AttachmentUploadSerializer,
    CommittedResultSerializer,
    ConfirmSignatureSerializer,
    DuplicateMatchSerializer,
    LegalActionsSerializer,
    PaymentCreateSerializer,
    PaymentEntrySerializer,
    PendingSignatureSerializer,
    RequisitionCreateSerializer,
    RequisitionSerializer,
    RequisitionSummarySerializer,
)
from req_core.requisitions.models import PendingSignature
from req_core.requisitions.models import Requisition as RequisitionRow
from req_core.requisitions.printable import printable_form
from req_core.requisitions.selectors import RequisitionFilter, actionable_for, possible_duplicates
from req_core.requisitions.services import Command, WorkflowService
from req_core.requisitions.store import RequisitionStore
from req_core.requisitions.transitions import stage_label


class RequisitionViewSet(viewsets.GenericViewSet):
    """
    Requisitions v1:
    - list/retrieve, inbox
    - create and begin_action park a PendingSignature (confirm under /signatures/pending/)
    - legal-actions, printable, duplicates
    - attachments, uploads, remind, payments
    """
    permission_classes = [RequisitionPermission]
    serializer_class = RequisitionSerializer
    queryset = RequisitionRow.objects.none()
    filterset_class = RequisitionFilter
    ordering_fields = ["created_at", "updated_at", "total_cost", "id"]
    parser_classes = [JSONParser, MultiPartParser, FormParser]

    def _store(self) -> RequisitionStore:
        return RequisitionStore()

    def _service(self) -> WorkflowService:
        return WorkflowService(store=self._store())

    # ----------------------------
    # Reads
    # ----------------------------

    @extend_schema(tags=["Requisitions"], responses={200: RequisitionSummarySerializer(many=True)})
    def list(self, request):
        store = self._store()
        qs = self.filter_queryset(store.queryset().order_by("-created_at", "-id"))
        page = self.paginate_queryset(qs)
        rows = page if page is not None else list(qs)
        data = RequisitionSummarySerializer([store.to_domain(r) for r in rows], many=True).data
        if page is not None:
            return self.get_paginated_response(data)
        return Response(data)

    @extend_schema(tags=["Requisitions"], responses={200: RequisitionSerializer})
    def retrieve(self, request, pk=None):
        return Response(RequisitionSerializer(self._store().get(pk)).data)

    @extend_schema(tags=["Requisitions"], responses={200: RequisitionSummarySerializer(many=True)})
    @action(methods=["GET"], detail=False, url_path="inbox")
    def inbox(self, request):
        items = actionable_for(actor_for_user(request.user), store=self._store())
        return Response(RequisitionSummarySerializer(items, many=True).data)

    @extend_schema(tags=["Requisitions"], responses={200: LegalActionsSerializer})
    @action(methods=["GET"], detail=True, url_path="legal-actions")
    def legal_actions(self, request, pk=None):
        req = self._store().get(pk)
        actions = gate.legal_actions(req, actor_for_user(request.user), table=self._service().table)
        return Response(
            {
                "requisition_id": req.id,
                "stage": req.stage,
                "status_label": stage_label(req.stage),
                "actions": sorted(actions),
            }
        )

    @extend_schema(tags=["Requisitions"], responses={200: OpenApiTypes.OBJECT})
    @action(methods=["GET"], detail=True, url_path="printable")
    def printable(self, request, pk=None):
        return Response(printable_form(self._store().get(pk)))

    @extend_schema(tags=["Requisitions"], responses={200: DuplicateMatchSerializer(many=True)})
    @action(methods=["GET"], detail=True, url_path="duplicates")
    def duplicates(self, request, pk=None):
        store = self._store()
        matches = possible_duplicates(store.get(pk), store=store)
        return Response(DuplicateMatchSerializer(matches, many=True).data)

    # ----------------------------
    # Two-step workflow actions
    # ----------------------------

    @extend_schema(tags=["Requisitions"], request=RequisitionCreateSerializer, responses={201: PendingSignatureSerializer})
    def create(self, request):
        ser = RequisitionCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        pending = self._service().begin_create(actor_for_user(request.user), ser.validated_data)
        return Response(PendingSignatureSerializer(pending).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Requisitions"], request=ActionRequestSerializer, responses={201: PendingSignatureSerializer})
    @action(methods=["POST"], detail=True, url_path="actions")
    def begin_action(self, request, pk=None):
        ser = ActionRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        data = dict(ser.validated_data)
        command = Command(requisition_id=pk, action=data.pop("action"), payload=data)
        pending = self._service().begin_action(actor_for_user(request.user), command)
        return Response(PendingSignatureSerializer(pending).data, status=status.HTTP_201_CREATED)

    # ----------------------------
    # Single-step actions
    # ----------------------------

    @extend_schema(
        tags=["Requisitions"],
        methods=["GET"],
        responses={200: AttachmentRefSerializer(many=True)},
    )
    @extend_schema(
        tags=["Requisitions"],
        methods=["POST"],
        request={"multipart/form-data": AttachmentUploadSerializer},
        responses={201: RequisitionSerializer},
    )
    @action(methods=["GET", "POST"], detail=True, url_path="attachments")
    def attachments(self, request, pk=None):
        if request.method == "GET":
            return Response(AttachmentRefSerializer(self._store().get(pk).attachments, many=True).data)

        ser = AttachmentUploadSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        upload = ser.validated_data["file"]

        req = self._service().add_attachment(
            actor_for_user(request.user),
            pk,
            name=ser.validated_data.get("name") or upload.name,
            content=upload,
            content_type=getattr(upload, "content_type", "") or "",
        )
        return Response(RequisitionSerializer(req).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        tags=["Requisitions"],
        request={"multipart/form-data": AttachmentUploadSerializer},
        responses={201: AttachmentRefSerializer},
    )
    @action(methods=["POST"], detail=False, url_path="uploads")
    def uploads(self, request):
        ser = AttachmentUploadSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        upload = ser.validated_data["file"]

        ref = self._service().upload(
            actor_for_user(request.user),
            name=ser.validated_data.get("name") or upload.name,
            content=upload,
            content_type=getattr(upload, "content_type", "") or "",
        )
        return Response(AttachmentRefSerializer(ref).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Requisitions"], request=None, responses={200: RequisitionSummarySerializer})
    @action(methods=["POST"], detail=True, url_path="remind")
    def remind(self, request, pk=None):
        req = self._service().remind(actor_for_user(request.user), pk)
        return Response(RequisitionSummarySerializer(req).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Payments"], methods=["GET"], responses={200: PaymentEntrySerializer(many=True)})
    @extend_schema(
        tags=["Payments"],
        methods=["POST"],
        request=PaymentCreateSerializer,
        responses={201: RequisitionSerializer},
    )
    @action(methods=["GET", "POST"], detail=True, url_path="payments")
    def payments(self, request, pk=None):
        store = self._store()
        if request.method == "GET":
            return Response(PaymentEntrySerializer(store.get(pk).payments, many=True).data)

        ser = PaymentCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        v = ser.validated_data

        req = PaymentService(store=store).record_payment(
            actor=actor_for_user(request.user),
            requisition_id=pk,
            amount=v["amount"],
            paid_on=v.get("paid_on"),
            reference=v.get("reference", ""),
            receipt_name=v.get("receipt_name"),
        )
        return Response(RequisitionSerializer(req).data, status=status.HTTP_201_CREATED)


class PendingSignatureViewSet(mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Second step of every workflow action: confirm with a signature, or cancel.
    """
    permission_classes = [IsAuthenticated]
    serializer_class = PendingSignatureSerializer
    lookup_value_regex = "[0-9a-fA-F-]{36}"

    def get_queryset(self):
        return PendingSignature.objects.filter(actor_id=self.request.user.id).order_by("-created_at")

    @extend_schema(
        tags=["Signatures"],
        request=ConfirmSignatureSerializer,
        responses={201: CommittedResultSerializer},
        parameters=[OpenApiParameter(name="id", type=OpenApiTypes.UUID, location=OpenApiParameter.PATH)],
    )
    @action(methods=["POST"], detail=True, url_path="confirm")
    def confirm(self, request, pk=None):
        ser = ConfirmSignatureSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        artifact = SignatureArtifact.from_dict(ser.validated_data["signature"])
        result = WorkflowService().confirm_signature(actor_for_user(request.user), pk, artifact)
        return Response(CommittedResultSerializer(result).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        tags=["Signatures"],
        request=None,
        responses={200: PendingSignatureSerializer},
        parameters=[OpenApiParameter(name="id", type=OpenApiTypes.UUID, location=OpenApiParameter.PATH)],
    )
    @action(methods=["POST"], detail=True, url_path="cancel")
    def cancel(self, request, pk=None):
        pending = WorkflowService().cancel(actor_for_user(request.user), pk)
        return Response(PendingSignatureSerializer(pending).data, status=status.HTTP_200_OK)
