from rest_framework import serializers


class ReimbursementCreateSerializer(serializers.Serializer):
    consultationId = serializers.IntegerField(source='consultation_id')
    methode = serializers.CharField(source='payment_method', required=False, allow_blank=True, allow_null=True)


class RefuseSerializer(serializers.Serializer):
    motif = serializers.CharField(source='reason', required=False, allow_blank=True, allow_null=True)


class MethodSerializer(serializers.Serializer):
    methode = serializers.CharField(source='payment_method', required=False, allow_blank=True, allow_null=True)
