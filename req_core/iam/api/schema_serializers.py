# req_core/iam/api/schema_serializers.py
from __future__ import annotations

from rest_framework import serializers


class LoginRequestSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField()


class DetailResponseSerializer(serializers.Serializer):
    detail = serializers.CharField()


class MeResponseSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    username = serializers.CharField()
    email = serializers.CharField(allow_blank=True)
    display_name = serializers.CharField()
    role = serializers.CharField()
    department = serializers.CharField(allow_blank=True)
    is_second_auditor = serializers.BooleanField()


class StampRequestSerializer(serializers.Serializer):
    password = serializers.CharField(trim_whitespace=False)


class SignatureArtifactSerializer(serializers.Serializer):
    kind = serializers.ChoiceField(choices=["DRAWN", "STAMP"])
    data = serializers.CharField(trim_whitespace=False)
