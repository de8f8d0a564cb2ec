"""
Reimbursement endpoints.

Every state change goes through the lifecycle service; this module only
maps HTTP verbs onto transitions and renders the result.
"""
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from insurance.serializers.reimbursements import MethodSerializer, RefuseSerializer, ReimbursementCreateSerializer
from insurance.services import reimbursements as lifecycle
from insurance.views.common import int_param, ok, reimbursement_dict


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def reimbursement_collection(request):
    """
    GET query params: statut, methode, assureId, dateDebut/dateFin (processing date).
    POST: create the reimbursement of a consultation that has none.
    """
    if request.method == 'POST':
        s = ReimbursementCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        r = lifecycle.create_reimbursement(
            s.validated_data['consultation_id'], s.validated_data.get('payment_method'), actor=request.user
        )
        return ok(reimbursement_dict(r), status=201)
    qs = lifecycle.list_reimbursements(
        status=request.query_params.get('statut'),
        payment_method=request.query_params.get('methode'),
        insured_id=int_param(request, 'assureId'),
        start=request.query_params.get('dateDebut'),
        end=request.query_params.get('dateFin'),
    )
    return ok([reimbursement_dict(r) for r in qs])


@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated])
def reimbursement_detail(request, reimbursement_id: int):
    if request.method == 'DELETE':
        lifecycle.delete_reimbursement(reimbursement_id, actor=request.user)
        return ok({'id': reimbursement_id, 'deleted': True})
    return ok(reimbursement_dict(lifecycle.get_reimbursement(reimbursement_id)))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def reimbursement_breakdown(request, reimbursement_id: int):
    b = lifecycle.breakdown(reimbursement_id)
    return ok({
        'remboursement': reimbursement_dict(b['reimbursement']),
        'cout': str(b['cost']),
        'taux': str(b['rate']),
        'categorieMedecin': b['category'],
        'pourcentage': str(b['percentage']),
        'resteACharge': str(b['outOfPocket']),
        'verifie': b['verified'],
        'formate': b['formatted'],
    })


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
def reimbursement_process(request, reimbursement_id: int):
    return ok(reimbursement_dict(lifecycle.process(reimbursement_id, actor=request.user)))


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
def reimbursement_refuse(request, reimbursement_id: int):
    s = RefuseSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    r = lifecycle.refuse(reimbursement_id, s.validated_data.get('reason'), actor=request.user)
    return ok(reimbursement_dict(r))


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
def reimbursement_revert(request, reimbursement_id: int):
    return ok(reimbursement_dict(lifecycle.revert_processing(reimbursement_id, actor=request.user)))


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
def reimbursement_method(request, reimbursement_id: int):
    s = MethodSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    r = lifecycle.change_method(reimbursement_id, s.validated_data.get('payment_method'), actor=request.user)
    return ok(reimbursement_dict(r))


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
def reimbursement_recalculate(request, reimbursement_id: int):
    return ok(reimbursement_dict(lifecycle.recalculate(reimbursement_id, actor=request.user)))


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
def reimbursement_process_all(request):
    done = lifecycle.process_all_pending(actor=request.user)
    return ok({'processed': len(done), 'ids': [r.id for r in done]})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def reimbursement_stats(request):
    stats = lifecycle.statistics()
    return ok({
        'parStatut': stats['counts'],
        'total': stats['total'],
        'montantTraite': str(stats['processedAmount']),
        'montantEnAttente': str(stats['pendingAmount']),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def reimbursement_for_consultation(request, consultation_id: int):
    return ok(reimbursement_dict(lifecycle.for_consultation(consultation_id)))
