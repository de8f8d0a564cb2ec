from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from insurance.serializers.records import InsuredSerializer, ReferringDoctorSerializer
from insurance.services import insured as insured_service
from insurance.views.common import flag_param, insured_dict, int_param, ok


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def insured_collection(request):
    """List insured persons or register one.

    Query params:
      - nom: name contains
      - methode: preferred payment method
      - sansMedecinTraitant: 1 to keep only insured without referring doctor
      - medecinTraitantId: patients of a referring doctor
    """
    if request.method == 'POST':
        s = InsuredSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        i = insured_service.register_insured(s.validated_data, actor=request.user)
        return ok(insured_dict(i), status=201)
    qs = insured_service.list_insured(
        name=request.query_params.get('nom'),
        payment_method=request.query_params.get('methode'),
        without_referring_doctor=flag_param(request, 'sansMedecinTraitant'),
        referring_doctor_id=int_param(request, 'medecinTraitantId'),
    )
    return ok([insured_dict(i) for i in qs])


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated])
def insured_detail(request, insured_id: int):
    if request.method == 'PUT':
        s = InsuredSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        return ok(insured_dict(insured_service.update_insured(insured_id, s.validated_data, actor=request.user)))
    if request.method == 'DELETE':
        insured_service.delete_insured(insured_id, actor=request.user)
        return ok({'id': insured_id, 'deleted': True})
    return ok(insured_dict(insured_service.get_insured(insured_id)))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def insured_by_number(request, number: str):
    return ok(insured_dict(insured_service.get_by_number(number)))


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
def insured_referring_doctor(request, insured_id: int):
    """Set the referring doctor (``medecinTraitantId``); null clears it."""
    s = ReferringDoctorSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    i = insured_service.set_referring_doctor(
        insured_id, s.validated_data.get('referring_doctor_id'), actor=request.user
    )
    return ok(insured_dict(i))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def insured_stats(request):
    return ok(insured_service.statistics())
