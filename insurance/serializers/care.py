from rest_framework import serializers


class PrescriptionItemSerializer(serializers.Serializer):
    type = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    detailsMedicament = serializers.CharField(source='medication_details', required=False, allow_blank=True,
                                              allow_null=True)
    specialisteId = serializers.IntegerField(source='specialist_id', required=False, allow_null=True)


class PrescriptionSerializer(PrescriptionItemSerializer):
    consultationId = serializers.IntegerField(source='consultation_id', required=False, allow_null=True)


class ConsultationCreateSerializer(serializers.Serializer):
    assureId = serializers.IntegerField(source='insured_id')
    medecinId = serializers.IntegerField(source='doctor_id')
    cout = serializers.DecimalField(source='cost', max_digits=12, decimal_places=2, required=False, allow_null=True)
    date = serializers.DateTimeField(required=False, allow_null=True)
    detailsMedical = serializers.CharField(source='notes', required=False, allow_blank=True, allow_null=True)
    methode = serializers.CharField(source='payment_method', required=False, allow_blank=True, allow_null=True)
    prescriptions = PrescriptionItemSerializer(many=True, required=False)


class ConsultationUpdateSerializer(serializers.Serializer):
    cout = serializers.DecimalField(source='cost', max_digits=12, decimal_places=2, required=False, allow_null=True)
    date = serializers.DateTimeField(required=False, allow_null=True)
    detailsMedical = serializers.CharField(source='notes', required=False, allow_blank=True, allow_null=True)
