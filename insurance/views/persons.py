"""
Person endpoints.

Listing and writes are reserved to administrators; a single person can
also be read by accounts holding the USER role.
"""
from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.parsers import FormParser, MultiPartParser

from insurance.permissions import IsAdminOrUserRole, IsAdminRole, ReadOnly
from insurance.serializers.records import PersonSerializer
from insurance.services import persons
from insurance.views.common import ok, person_dict


@api_view(['GET', 'POST'])
@permission_classes([IsAdminRole])
def person_collection(request):
    """GET: list/search (``?nom=``, ``?email=``, ``?telephone=``). POST: register a person."""
    if request.method == 'POST':
        s = PersonSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        p = persons.create_person(s.validated_data, actor=request.user)
        return ok(person_dict(p), status=201)
    qs = persons.search_persons(
        name=request.query_params.get('nom'),
        email=request.query_params.get('email'),
        phone=request.query_params.get('telephone'),
    )
    return ok([person_dict(p) for p in qs])


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([(IsAdminOrUserRole & ReadOnly) | IsAdminRole])
def person_detail(request, person_id: int):
    if request.method == 'PUT':
        s = PersonSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        return ok(person_dict(persons.update_person(person_id, s.validated_data, actor=request.user)))
    if request.method == 'DELETE':
        persons.delete_person(person_id, actor=request.user)
        return ok({'id': person_id, 'deleted': True})
    return ok(person_dict(persons.get_person(person_id)))


@api_view(['GET'])
@permission_classes([IsAdminOrUserRole])
def person_exists(request, person_id: int):
    return ok({'id': person_id, 'exists': persons.person_exists(person_id)})


@api_view(['POST'])
@permission_classes([IsAdminRole])
@parser_classes([MultiPartParser, FormParser])
def person_photo(request, person_id: int):
    """Upload (multipart field ``file``) the photo of a person, replacing the previous one."""
    p = persons.upload_photo(person_id, request.FILES.get('file'), actor=request.user)
    return ok(person_dict(p))
