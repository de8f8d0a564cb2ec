"""
Consultation endpoints.

Creating a consultation also creates its pending reimbursement and,
optionally, the prescriptions written during the visit.
"""
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from insurance.serializers.care import (
    ConsultationCreateSerializer,
    ConsultationUpdateSerializer,
    PrescriptionItemSerializer,
)
from insurance.services import consultations as consultation_service
from insurance.services import prescriptions as prescription_service
from insurance.views.common import consultation_dict, flag_param, int_param, ok, prescription_dict


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def consultation_collection(request):
    """
    GET query params:
      - assureId, medecinId
      - dateDebut, dateFin: ISO dates, inclusive
      - categorie: generaliste|specialiste
      - sansRemboursement: 1 to keep consultations without reimbursement
    """
    if request.method == 'POST':
        s = ConsultationCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        c = consultation_service.create_consultation(**s.validated_data, actor=request.user)
        return ok(consultation_dict(c, with_prescriptions=True), status=201)
    qs = consultation_service.list_consultations(
        insured_id=int_param(request, 'assureId'),
        doctor_id=int_param(request, 'medecinId'),
        start=request.query_params.get('dateDebut'),
        end=request.query_params.get('dateFin'),
        category=request.query_params.get('categorie'),
        without_reimbursement=flag_param(request, 'sansRemboursement'),
    )
    return ok([consultation_dict(c) for c in qs])


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated])
def consultation_detail(request, consultation_id: int):
    if request.method == 'PUT':
        s = ConsultationUpdateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        c = consultation_service.update_consultation(consultation_id, **s.validated_data, actor=request.user)
        return ok(consultation_dict(c, with_prescriptions=True))
    if request.method == 'DELETE':
        consultation_service.delete_consultation(consultation_id, actor=request.user)
        return ok({'id': consultation_id, 'deleted': True})
    c = consultation_service.get_consultation(consultation_id)
    return ok(consultation_dict(c, with_prescriptions=True))


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def consultation_prescriptions(request, consultation_id: int):
    if request.method == 'POST':
        s = PrescriptionItemSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        p = prescription_service.add_prescription(consultation_id, **s.validated_data, actor=request.user)
        return ok(prescription_dict(p), status=201)
    qs = prescription_service.list_prescriptions(consultation_id=consultation_id)
    return ok([prescription_dict(p) for p in qs])


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def consultation_stats(request):
    stats = consultation_service.statistics()
    return ok({
        'total': stats['total'],
        'generalistes': stats['generalist'],
        'specialistes': stats['specialist'],
        'coutTotal': str(stats['totalCost']),
        'coutSpecialistes': str(stats['specialistCost']),
        'resteAChargeSpecialistes': str(stats['specialistOutOfPocket']),
    })
