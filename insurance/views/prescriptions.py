from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from insurance.exceptions import InvalidArgument
from insurance.serializers.care import PrescriptionSerializer
from insurance.services import prescriptions as prescription_service
from insurance.views.common import int_param, ok, prescription_dict


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def prescription_collection(request):
    """List prescriptions (consultationId, type, assureId, medecinId, specialisteId, dateDebut, dateFin) or add one."""
    if request.method == 'POST':
        s = PrescriptionSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = dict(s.validated_data)
        consultation_id = vd.pop('consultation_id', None)
        if consultation_id is None:
            raise InvalidArgument('consultationId is required')
        p = prescription_service.add_prescription(consultation_id, **vd, actor=request.user)
        return ok(prescription_dict(p), status=201)
    qs = prescription_service.list_prescriptions(
        consultation_id=int_param(request, 'consultationId'),
        type=request.query_params.get('type'),
        insured_id=int_param(request, 'assureId'),
        doctor_id=int_param(request, 'medecinId'),
        specialist_id=int_param(request, 'specialisteId'),
        start=request.query_params.get('dateDebut'),
        end=request.query_params.get('dateFin'),
    )
    return ok([prescription_dict(p) for p in qs])


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated])
def prescription_detail(request, prescription_id: int):
    if request.method == 'PUT':
        s = PrescriptionSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        p = prescription_service.update_prescription(prescription_id, **s.validated_data, actor=request.user)
        return ok(prescription_dict(p))
    if request.method == 'DELETE':
        prescription_service.delete_prescription(prescription_id, actor=request.user)
        return ok({'id': prescription_id, 'deleted': True})
    return ok(prescription_dict(prescription_service.get_prescription(prescription_id)))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def prescription_counts(request, insured_id: int):
    return ok(prescription_service.counts_for_insured(insured_id))
