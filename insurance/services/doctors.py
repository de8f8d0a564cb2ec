from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from django.db import transaction
from django.db.models import Q

from insurance.exceptions import Conflict, InvalidArgument, NotFound
from insurance.models import Doctor, Person
from insurance.services.audit import log_action
from insurance.services.persons import build_person, clean_person_fields, ensure_email_free
from insurance.validators import validate_specialization

logger = logging.getLogger(__name__)

_RELATED = ('person', 'person__photo')


def get_doctor(doctor_id: int) -> Doctor:
    d = Doctor.objects.select_related(*_RELATED).filter(pk=doctor_id).first()
    if not d:
        raise NotFound(f'doctor {doctor_id} not found')
    return d


@transaction.atomic
def register_doctor(data: Dict[str, Any], *, actor=None) -> Doctor:
    """Register a doctor, on an existing person (``person_id``) or a new one.

    An empty specialization registers a generalist.
    """
    specialization = validate_specialization(data.get('specialization'))
    person_id = data.get('person_id')
    if person_id not in (None, ''):
        person = Person.objects.select_for_update().filter(pk=person_id).first()
        if not person:
            raise NotFound(f'person {person_id} not found')
        if Doctor.objects.filter(pk=person.pk).exists():
            raise Conflict(f'person {person_id} is already a doctor')
    else:
        person = build_person(data)
    doctor = Doctor.objects.create(person=person, specialization=specialization)
    log_action(user=actor, action='doctor.create', object_type='doctor', object_id=person.pk,
               detail={'specialization': specialization})
    logger.info(f"Doctor {person.pk} registered ({doctor.category})")
    return get_doctor(person.pk)


@transaction.atomic
def update_doctor(doctor_id: int, data: Dict[str, Any], *, actor=None) -> Doctor:
    doctor = Doctor.objects.select_for_update().select_related('person').filter(pk=doctor_id).first()
    if not doctor:
        raise NotFound(f'doctor {doctor_id} not found')
    if 'specialization' in data:
        specialization = validate_specialization(data.get('specialization'))
        if doctor.is_generalist and specialization and doctor.patients.exists():
            logger.warning(f"Rejected specialization of doctor {doctor.pk}: referring doctor of insured persons")
            raise Conflict('a referring doctor must stay a generalist')
        if not doctor.is_generalist and not specialization and doctor.referrals.exists():
            logger.warning(f"Rejected generalisation of doctor {doctor.pk}: target of referrals")
            raise Conflict('a doctor targeted by referrals must stay a specialist')
        doctor.specialization = specialization
    if data.get('name') is not None:
        fields = clean_person_fields(data)
        ensure_email_free(fields['email'], exclude_id=doctor.pk)
        person = doctor.person
        for key, value in fields.items():
            setattr(person, key, value)
        person.save()
    doctor.save()
    log_action(user=actor, action='doctor.update', object_type='doctor', object_id=doctor.pk,
               detail={'specialization': doctor.specialization})
    logger.info(f"Doctor {doctor.pk} updated ({doctor.category})")
    return get_doctor(doctor.pk)


@transaction.atomic
def delete_doctor(doctor_id: int, *, actor=None) -> None:
    """Remove the doctor profile; the person record stays."""
    doctor = Doctor.objects.select_for_update().filter(pk=doctor_id).first()
    if not doctor:
        raise NotFound(f'doctor {doctor_id} not found')
    if doctor.consultations.exists():
        logger.warning(f"Rejected deletion of doctor {doctor.pk}: has consultations")
        raise Conflict('a doctor with consultations cannot be deleted')
    if doctor.patients.exists():
        logger.warning(f"Rejected deletion of doctor {doctor.pk}: referring doctor of insured persons")
        raise Conflict('a doctor who is a referring doctor cannot be deleted')
    if doctor.referrals.exists():
        logger.warning(f"Rejected deletion of doctor {doctor.pk}: target of referrals")
        raise Conflict('a doctor targeted by referrals cannot be deleted')
    doctor.delete()
    log_action(user=actor, action='doctor.delete', object_type='doctor', object_id=doctor_id)
    logger.info(f"Doctor {doctor_id} deleted")


def list_doctors(*, category: Optional[str] = None, specialization: Optional[str] = None,
                 name: Optional[str] = None):
    qs = Doctor.objects.select_related(*_RELATED).order_by('person__name', 'person__first_name', 'pk')
    if category:
        if category in ('generalist', 'generaliste'):
            qs = qs.filter(specialization='')
        elif category in ('specialist', 'specialiste'):
            qs = qs.exclude(specialization='')
        else:
            raise InvalidArgument(f'unknown doctor category {category}')
    if specialization is not None:
        specialization = specialization.strip()
        if not specialization:
            raise InvalidArgument('specialization cannot be empty')
        qs = qs.filter(specialization__iexact=specialization)
    if name is not None:
        name = name.strip()
        if not name:
            raise InvalidArgument('search name cannot be empty')
        qs = qs.filter(Q(person__name__icontains=name) | Q(person__first_name__icontains=name))
    return qs


def specializations() -> list[str]:
    return list(
        Doctor.objects.exclude(specialization='')
        .order_by('specialization').values_list('specialization', flat=True).distinct()
    )
