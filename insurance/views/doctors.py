from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from insurance.serializers.records import DoctorSerializer
from insurance.services import doctors as doctor_service
from insurance.views.common import doctor_dict, ok


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def doctor_collection(request):
    """List doctors (``?categorie=generaliste|specialiste``, ``?specialisation=``, ``?nom=``) or register one."""
    if request.method == 'POST':
        s = DoctorSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        d = doctor_service.register_doctor(s.validated_data, actor=request.user)
        return ok(doctor_dict(d), status=201)
    qs = doctor_service.list_doctors(
        category=request.query_params.get('categorie'),
        specialization=request.query_params.get('specialisation'),
        name=request.query_params.get('nom'),
    )
    return ok([doctor_dict(d) for d in qs])


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated])
def doctor_detail(request, doctor_id: int):
    if request.method == 'PUT':
        s = DoctorSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        return ok(doctor_dict(doctor_service.update_doctor(doctor_id, s.validated_data, actor=request.user)))
    if request.method == 'DELETE':
        doctor_service.delete_doctor(doctor_id, actor=request.user)
        return ok({'id': doctor_id, 'deleted': True})
    return ok(doctor_dict(doctor_service.get_doctor(doctor_id)))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def doctor_specializations(request):
    return ok(doctor_service.specializations())
