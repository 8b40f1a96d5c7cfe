from rest_framework import serializers

from req_core.notifications.models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = [
            "id",
            "title",
            "body",
            "severity",
            "related_requisition_id",
            "is_read",
            "read_at",
            "created_at",
        ]


class UnreadCountSerializer(serializers.Serializer):
    unread = serializers.IntegerField()
