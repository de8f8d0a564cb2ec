from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from django.db import IntegrityError, transaction
from django.db.models import Count, Q

from insurance.exceptions import Conflict, Forbidden, InvalidArgument, NotFound
from insurance.models import Doctor, Insured, Person
from insurance.services.audit import log_action
from insurance.services.persons import build_person, clean_person_fields, ensure_email_free
from insurance.validators import validate_insurance_number, validate_payment_method

logger = logging.getLogger(__name__)

_RELATED = ('person', 'person__photo', 'referring_doctor__person')


def get_insured(insured_id: int) -> Insured:
    i = Insured.objects.select_related(*_RELATED).filter(pk=insured_id).first()
    if not i:
        raise NotFound(f'insured {insured_id} not found')
    return i


def get_by_number(insurance_number: str) -> Insured:
    i = Insured.objects.select_related(*_RELATED).filter(insurance_number=insurance_number).first()
    if not i:
        raise NotFound(f'no insured with number {insurance_number}')
    return i


def _ensure_number_free(number: str, exclude_id: Optional[int] = None) -> None:
    qs = Insured.objects.filter(insurance_number=number)
    if exclude_id is not None:
        qs = qs.exclude(pk=exclude_id)
    if qs.exists():
        raise Conflict(f'insurance number {number} is already used')


def _referring_generalist(doctor_id) -> Doctor:
    doctor = Doctor.objects.filter(pk=doctor_id).first()
    if not doctor:
        raise NotFound(f'doctor {doctor_id} not found')
    if not doctor.is_generalist:
        logger.warning(f"Rejected specialist {doctor.pk} as referring doctor")
        raise Forbidden('the referring doctor must be a generalist')
    return doctor


@transaction.atomic
def register_insured(data: Dict[str, Any], *, actor=None) -> Insured:
    """Register an insured, on an existing person (``person_id``) or a new one."""
    number = validate_insurance_number(data.get('insurance_number'))
    method = validate_payment_method(data.get('payment_method'))
    referring_id = data.get('referring_doctor_id')
    referring = _referring_generalist(referring_id) if referring_id not in (None, '') else None
    _ensure_number_free(number)

    person_id = data.get('person_id')
    if person_id not in (None, ''):
        person = Person.objects.select_for_update().filter(pk=person_id).first()
        if not person:
            raise NotFound(f'person {person_id} not found')
        if Insured.objects.filter(pk=person.pk).exists():
            raise Conflict(f'person {person_id} is already insured')
    else:
        person = build_person(data)

    try:
        with transaction.atomic():
            insured = Insured.objects.create(
                person=person, insurance_number=number, payment_method=method, referring_doctor=referring,
            )
    except IntegrityError:
        raise Conflict(f'insurance number {number} is already used')
    log_action(user=actor, action='insured.create', object_type='insured', object_id=person.pk,
               detail={'insurance_number': number})
    logger.info(f"Insured {person.pk} registered with number {number}")
    return get_insured(person.pk)


@transaction.atomic
def update_insured(insured_id: int, data: Dict[str, Any], *, actor=None) -> Insured:
    insured = Insured.objects.select_for_update().select_related('person').filter(pk=insured_id).first()
    if not insured:
        raise NotFound(f'insured {insured_id} not found')
    number = validate_insurance_number(data.get('insurance_number'))
    _ensure_number_free(number, exclude_id=insured.pk)
    insured.insurance_number = number
    insured.payment_method = validate_payment_method(data.get('payment_method'))
    if 'referring_doctor_id' in data:
        referring_id = data.get('referring_doctor_id')
        insured.referring_doctor = _referring_generalist(referring_id) if referring_id not in (None, '') else None

    if data.get('name') is not None:
        fields = clean_person_fields(data)
        ensure_email_free(fields['email'], exclude_id=insured.pk)
        person = insured.person
        for key, value in fields.items():
            setattr(person, key, value)
        person.save()
    try:
        with transaction.atomic():
            insured.save()
    except IntegrityError:
        raise Conflict('insurance number or email already used')
    log_action(user=actor, action='insured.update', object_type='insured', object_id=insured.pk)
    logger.info(f"Insured {insured.pk} updated")
    return get_insured(insured.pk)


@transaction.atomic
def set_referring_doctor(insured_id: int, doctor_id: Optional[int], *, actor=None) -> Insured:
    """Designate (or clear, with ``None``) the referring doctor of an insured."""
    insured = Insured.objects.select_for_update().filter(pk=insured_id).first()
    if not insured:
        raise NotFound(f'insured {insured_id} not found')
    insured.referring_doctor = _referring_generalist(doctor_id) if doctor_id not in (None, '') else None
    insured.save(update_fields=['referring_doctor'])
    log_action(user=actor, action='insured.referring_doctor', object_type='insured', object_id=insured.pk,
               detail={'doctor': insured.referring_doctor_id})
    logger.info(f"Insured {insured.pk} referring doctor set to {insured.referring_doctor_id}")
    return get_insured(insured.pk)


@transaction.atomic
def delete_insured(insured_id: int, *, actor=None) -> None:
    """Remove the insured profile; the person record stays."""
    insured = Insured.objects.select_for_update().filter(pk=insured_id).first()
    if not insured:
        raise NotFound(f'insured {insured_id} not found')
    if insured.consultations.exists():
        logger.warning(f"Rejected deletion of insured {insured.pk}: has consultations")
        raise Conflict('an insured with consultations cannot be deleted')
    insured.delete()
    log_action(user=actor, action='insured.delete', object_type='insured', object_id=insured_id)
    logger.info(f"Insured {insured_id} deleted")


def list_insured(*, name: Optional[str] = None, payment_method: Optional[str] = None,
                 without_referring_doctor: bool = False, referring_doctor_id: Optional[int] = None):
    qs = Insured.objects.select_related(*_RELATED).order_by('person__name', 'person__first_name', 'pk')
    if name is not None:
        name = name.strip()
        if not name:
            raise InvalidArgument('search name cannot be empty')
        qs = qs.filter(Q(person__name__icontains=name) | Q(person__first_name__icontains=name))
    if payment_method:
        qs = qs.filter(payment_method=validate_payment_method(payment_method))
    if without_referring_doctor:
        qs = qs.filter(referring_doctor__isnull=True)
    if referring_doctor_id is not None:
        qs = qs.filter(referring_doctor_id=referring_doctor_id)
    return qs


def statistics() -> dict:
    agg = Insured.objects.aggregate(
        total=Count('pk'),
        without_referring=Count('pk', filter=Q(referring_doctor__isnull=True)),
    )
    by_method = {
        row['payment_method']: row['n']
        for row in Insured.objects.values('payment_method').annotate(n=Count('pk')).order_by()
    }
    return {
        'total': agg['total'],
        'withoutReferringDoctor': agg['without_referring'],
        'byPaymentMethod': by_method,
    }
