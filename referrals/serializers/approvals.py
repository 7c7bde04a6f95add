from rest_framework import serializers


class ApproveSerializer(serializers.Serializer):
    message = serializers.CharField(required=False, allow_blank=True, max_length=500)


class RejectSerializer(serializers.Serializer):
    # length rules are enforced by the approval workflow
    reason = serializers.CharField(required=False, allow_blank=True)
