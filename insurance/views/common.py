"""
Helpers shared by the API views: query parameter parsing and the JSON
representation of each record.
"""
from __future__ import annotations

from typing import Optional

from rest_framework.response import Response

from insurance.exceptions import InvalidArgument
from insurance.models import Consultation, Doctor, Insured, Person, Prescription, Reimbursement
from insurance.services import calculator


def ok(data, status: int = 200) -> Response:
    return Response({'ok': True, 'data': data}, status=status)


def int_param(request, name: str) -> Optional[int]:
    raw = request.query_params.get(name)
    if raw in (None, ''):
        return None
    try:
        return int(raw)
    except ValueError:
        raise InvalidArgument(f'{name} must be an integer')


def flag_param(request, name: str) -> bool:
    return (request.query_params.get(name) or '0').lower() in ('1', 'true', 'yes')


def _money(value) -> Optional[str]:
    return None if value is None else str(calculator.money(value))


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def person_dict(p: Person) -> dict:
    photo = p.photo
    return {
        'id': p.id,
        'nom': p.name,
        'prenom': p.first_name,
        'dateNaissance': _iso(p.birth_date),
        'genre': p.gender,
        'adresse': p.address,
        'telephone': p.phone,
        'email': p.email,
        'photo': {
            'id': photo.id,
            'url': photo.file.url if photo.file else None,
            'nom': photo.original_name,
            'type': photo.content_type,
            'taille': photo.size,
        } if photo else None,
        'dateCreation': _iso(p.created_at),
    }


def doctor_dict(d: Doctor) -> dict:
    data = person_dict(d.person)
    data.update({
        'specialisation': d.specialization,
        'generaliste': d.is_generalist,
        'categorie': d.category,
    })
    return data


def insured_dict(i: Insured) -> dict:
    data = person_dict(i.person)
    referring = i.referring_doctor
    data.update({
        'numeroAssurance': i.insurance_number,
        'methodePaiementPreferee': i.payment_method,
        'medecinTraitantId': i.referring_doctor_id,
        'medecinTraitant': referring.person.full_name if referring else None,
    })
    return data


def reimbursement_dict(r: Reimbursement) -> dict:
    return {
        'id': r.id,
        'consultationId': r.consultation_id,
        'montant': _money(r.amount),
        'methode': r.payment_method,
        'statut': r.status,
        'dateTraitement': _iso(r.processed_at),
        'motifRefus': r.refusal_reason or None,
        'dateCreation': _iso(r.created_at),
    }


def prescription_dict(p: Prescription) -> dict:
    return {
        'id': p.id,
        'consultationId': p.consultation_id,
        'type': p.type,
        'detailsMedicament': p.medication_details or None,
        'specialisteId': p.specialist_id,
        'specialiste': p.specialist.person.full_name if p.specialist_id else None,
        'dateCreation': _iso(p.created_at),
    }


def consultation_dict(c: Consultation, *, with_prescriptions: bool = False) -> dict:
    reimbursement = c.reimbursement if _has_reimbursement(c) else None
    data = {
        'id': c.id,
        'date': _iso(c.date),
        'assureId': c.insured_id,
        'assure': c.insured.person.full_name,
        'medecinId': c.doctor_id,
        'medecin': c.doctor.person.full_name,
        'categorieMedecin': c.doctor.category,
        'cout': _money(c.cost),
        'detailsMedical': c.notes or None,
        'remboursement': reimbursement_dict(reimbursement) if reimbursement else None,
    }
    if with_prescriptions:
        data['prescriptions'] = [prescription_dict(p) for p in c.prescriptions.select_related('specialist__person')]
    return data


def _has_reimbursement(c: Consultation) -> bool:
    try:
        c.reimbursement
    except Reimbursement.DoesNotExist:
        return False
    return True
