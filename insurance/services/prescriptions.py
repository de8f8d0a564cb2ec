"""
Prescription rules.

Only the generalist who performed a consultation can prescribe.  A
medication prescription carries its details; a specialist referral
names an existing specialist.
"""
from __future__ import annotations

import logging
from typing import Optional

import bleach
from django.db import transaction
from django.db.models import Count

from insurance.exceptions import Forbidden, InvalidArgument, NotFound
from insurance.models import Consultation, Doctor, Insured, Prescription
from insurance.services.audit import log_action
from insurance.validators import parse_period

logger = logging.getLogger(__name__)

TYPES = {value for value, _ in Prescription.TYPE_CHOICES}

_RELATED = ('consultation__doctor__person', 'consultation__insured__person', 'specialist__person')


def validate_fields(ptype: Optional[str], medication_details: Optional[str], specialist_id: Optional[int]):
    """Return ``(type, details, specialist)`` or raise.

    Used both for standalone prescriptions and for the ones created
    together with a consultation.
    """
    if not ptype:
        raise InvalidArgument('prescription type is required')
    if ptype not in TYPES:
        raise InvalidArgument(f'prescription type must be one of {sorted(TYPES)}')
    details = bleach.clean((medication_details or '').strip(), strip=True)
    if ptype == Prescription.TYPE_MEDICATION:
        if not details:
            raise InvalidArgument('medication details are required for a medication prescription')
        return ptype, details, None
    if specialist_id in (None, ''):
        raise InvalidArgument('a specialist is required for a specialist referral')
    specialist = Doctor.objects.filter(pk=specialist_id).first()
    if not specialist:
        raise NotFound(f'doctor {specialist_id} not found')
    if specialist.is_generalist:
        raise InvalidArgument(f'doctor {specialist_id} is not a specialist')
    return ptype, details, specialist


def get_prescription(prescription_id: int) -> Prescription:
    p = Prescription.objects.select_related(*_RELATED).filter(pk=prescription_id).first()
    if not p:
        raise NotFound(f'prescription {prescription_id} not found')
    return p


@transaction.atomic
def add_prescription(consultation_id: int, *, type: Optional[str] = None, medication_details: Optional[str] = None,
                     specialist_id: Optional[int] = None, actor=None) -> Prescription:
    consultation = Consultation.objects.select_related('doctor').filter(pk=consultation_id).first()
    if not consultation:
        raise NotFound(f'consultation {consultation_id} not found')
    if not consultation.doctor.is_generalist:
        logger.warning(f"Specialist {consultation.doctor_id} attempted to prescribe on consultation {consultation.id}")
        raise Forbidden('only a generalist can prescribe')
    ptype, details, specialist = validate_fields(type, medication_details, specialist_id)
    p = Prescription.objects.create(
        consultation=consultation, type=ptype, medication_details=details, specialist=specialist,
    )
    log_action(user=actor, action='prescription.create', object_type='prescription', object_id=p.id,
               detail={'consultation': consultation.id, 'type': ptype})
    logger.info(f"Prescription {p.id} ({ptype}) added to consultation {consultation.id}")
    return get_prescription(p.id)


@transaction.atomic
def update_prescription(prescription_id: int, *, type: Optional[str] = None, medication_details: Optional[str] = None,
                        specialist_id: Optional[int] = None, consultation_id: Optional[int] = None,
                        actor=None) -> Prescription:
    p = Prescription.objects.select_for_update().filter(pk=prescription_id).first()
    if not p:
        raise NotFound(f'prescription {prescription_id} not found')
    if consultation_id not in (None, '') and int(consultation_id) != p.consultation_id:
        raise InvalidArgument('the consultation of a prescription cannot be changed')
    p.type, p.medication_details, p.specialist = validate_fields(type, medication_details, specialist_id)
    p.save()
    log_action(user=actor, action='prescription.update', object_type='prescription', object_id=p.id,
               detail={'type': p.type})
    logger.info(f"Prescription {p.id} updated")
    return get_prescription(p.id)


@transaction.atomic
def delete_prescription(prescription_id: int, *, actor=None) -> None:
    deleted, _ = Prescription.objects.filter(pk=prescription_id).delete()
    if not deleted:
        raise NotFound(f'prescription {prescription_id} not found')
    log_action(user=actor, action='prescription.delete', object_type='prescription', object_id=prescription_id)
    logger.info(f"Prescription {prescription_id} deleted")


def list_prescriptions(*, consultation_id: Optional[int] = None, type: Optional[str] = None,
                       insured_id: Optional[int] = None, doctor_id: Optional[int] = None,
                       specialist_id: Optional[int] = None, start=None, end=None):
    qs = Prescription.objects.select_related(*_RELATED).order_by('-created_at', '-id')
    if consultation_id is not None:
        if not Consultation.objects.filter(pk=consultation_id).exists():
            raise NotFound(f'consultation {consultation_id} not found')
        qs = qs.filter(consultation_id=consultation_id)
    if type:
        if type not in TYPES:
            raise InvalidArgument(f'prescription type must be one of {sorted(TYPES)}')
        qs = qs.filter(type=type)
    if insured_id is not None:
        qs = qs.filter(consultation__insured_id=insured_id)
    if doctor_id is not None:
        qs = qs.filter(consultation__doctor_id=doctor_id)
    if specialist_id is not None:
        qs = qs.filter(specialist_id=specialist_id)
    start, end = parse_period(start, end)
    if start:
        qs = qs.filter(consultation__date__gte=start)
    if end:
        qs = qs.filter(consultation__date__lte=end)
    return qs


def counts_for_insured(insured_id: int) -> dict:
    if not Insured.objects.filter(pk=insured_id).exists():
        raise NotFound(f'insured {insured_id} not found')
    counts = {t: 0 for t in TYPES}
    rows = (
        Prescription.objects.filter(consultation__insured_id=insured_id)
        .values('type').annotate(n=Count('id')).order_by()
    )
    for row in rows:
        counts[row['type']] = row['n']
    return {'insuredId': insured_id, 'counts': counts, 'total': sum(counts.values())}
