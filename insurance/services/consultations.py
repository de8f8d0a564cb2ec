from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, Optional

import bleach
from django.db import transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from insurance.exceptions import Conflict, Forbidden, InvalidArgument, NotFound
from insurance.models import Consultation, Doctor, Insured, Prescription, Reimbursement
from insurance.services import calculator, prescriptions as prescription_rules
from insurance.services.audit import log_action
from insurance.services.reimbursements import amount_for, attach_to_consultation
from insurance.validators import parse_moment, parse_period

logger = logging.getLogger(__name__)

MAX_COST = Decimal('99999999.99')

_RELATED = ('insured__person', 'doctor__person', 'reimbursement')


def _positive_cost(cost) -> Decimal:
    cost = calculator.to_decimal(cost)
    if cost is None:
        raise InvalidArgument('cost is required')
    if cost <= 0:
        raise InvalidArgument('cost must be strictly positive')
    if cost > MAX_COST:
        raise InvalidArgument('cost is too large')
    return calculator.money(cost)


def _clean_notes(notes: Optional[str]) -> str:
    return bleach.clean((notes or '').strip(), strip=True)


def get_consultation(consultation_id: int) -> Consultation:
    c = Consultation.objects.select_related(*_RELATED).filter(pk=consultation_id).first()
    if not c:
        raise NotFound(f'consultation {consultation_id} not found')
    return c


def _reimbursement_of(consultation: Consultation, *, lock: bool = False) -> Optional[Reimbursement]:
    qs = Reimbursement.objects.filter(consultation_id=consultation.id)
    if lock:
        qs = qs.select_for_update()
    return qs.first()


def create_consultation(*, insured_id: int, doctor_id: int, cost=None, date=None, notes: Optional[str] = None,
                        payment_method: Optional[str] = None,
                        prescriptions: Optional[Iterable[dict]] = None, actor=None) -> Consultation:
    """Record a consultation together with its PENDING reimbursement.

    ``prescriptions`` is an optional list of dicts with ``type``,
    ``medication_details`` and ``specialist_id``.  Every item is
    validated before anything is written; only a generalist may
    prescribe.
    """
    cost = _positive_cost(cost)
    moment = parse_moment(date, 'date') or timezone.now()
    insured = Insured.objects.filter(pk=insured_id).first()
    if not insured:
        raise NotFound(f'insured {insured_id} not found')
    doctor = Doctor.objects.filter(pk=doctor_id).first()
    if not doctor:
        raise NotFound(f'doctor {doctor_id} not found')

    items = list(prescriptions or [])
    if items and not doctor.is_generalist:
        logger.warning(f"Specialist {doctor.pk} attempted to prescribe")
        raise Forbidden('only a generalist can prescribe')
    validated = [
        prescription_rules.validate_fields(
            item.get('type'), item.get('medication_details'), item.get('specialist_id')
        )
        for item in items
    ]

    with transaction.atomic():
        consultation = Consultation.objects.create(
            insured=insured, doctor=doctor, date=moment, cost=cost, notes=_clean_notes(notes),
        )
        reimbursement = attach_to_consultation(consultation, payment_method)
        for ptype, details, specialist in validated:
            Prescription.objects.create(
                consultation=consultation, type=ptype, medication_details=details, specialist=specialist,
            )
        log_action(user=actor, action='consultation.create', object_type='consultation', object_id=consultation.id,
                   detail={'cost': str(cost), 'reimbursement': reimbursement.id, 'prescriptions': len(validated)})
    logger.info(
        f"Consultation {consultation.id} recorded for insured {insured.pk} with doctor {doctor.pk}: "
        f"cost {cost}, reimbursement {reimbursement.amount}"
    )
    return get_consultation(consultation.id)


@transaction.atomic
def update_consultation(consultation_id: int, *, cost=None, notes: Optional[str] = None, date=None,
                        actor=None) -> Consultation:
    """Change cost, notes or date; the pending amount follows the new cost."""
    consultation = Consultation.objects.select_for_update().select_related('doctor').filter(pk=consultation_id).first()
    if not consultation:
        raise NotFound(f'consultation {consultation_id} not found')
    reimbursement = _reimbursement_of(consultation, lock=True)
    if reimbursement and reimbursement.status == Reimbursement.STATUS_PROCESSED:
        logger.warning(f"Rejected update of consultation {consultation.id}: reimbursement processed")
        raise Conflict('a consultation with a processed reimbursement cannot be modified')

    if cost is not None:
        consultation.cost = _positive_cost(cost)
    if notes is not None:
        consultation.notes = _clean_notes(notes)
    if date is not None:
        consultation.date = parse_moment(date, 'date')
    consultation.save()

    if reimbursement:
        reimbursement.amount = amount_for(consultation)
        reimbursement.save(update_fields=['amount'])
    log_action(user=actor, action='consultation.update', object_type='consultation', object_id=consultation.id,
               detail={'cost': str(consultation.cost)})
    logger.info(f"Consultation {consultation.id} updated")
    return get_consultation(consultation.id)


@transaction.atomic
def delete_consultation(consultation_id: int, *, actor=None) -> None:
    consultation = Consultation.objects.select_for_update().filter(pk=consultation_id).first()
    if not consultation:
        raise NotFound(f'consultation {consultation_id} not found')
    reimbursement = _reimbursement_of(consultation, lock=True)
    if reimbursement and reimbursement.status == Reimbursement.STATUS_PROCESSED:
        logger.warning(f"Rejected deletion of consultation {consultation.id}: reimbursement processed")
        raise Conflict('a consultation with a processed reimbursement cannot be deleted')
    consultation.prescriptions.all().delete()
    if reimbursement:
        reimbursement.delete()
    consultation.delete()
    log_action(user=actor, action='consultation.delete', object_type='consultation', object_id=consultation_id)
    logger.info(f"Consultation {consultation_id} deleted")


def list_consultations(*, insured_id: Optional[int] = None, doctor_id: Optional[int] = None,
                       start=None, end=None, category: Optional[str] = None,
                       without_reimbursement: bool = False):
    qs = Consultation.objects.select_related(*_RELATED).order_by('-date', '-id')
    if insured_id is not None:
        qs = qs.filter(insured_id=insured_id)
    if doctor_id is not None:
        qs = qs.filter(doctor_id=doctor_id)
    start, end = parse_period(start, end)
    if start:
        qs = qs.filter(date__gte=start)
    if end:
        qs = qs.filter(date__lte=end)
    if category:
        qs = qs.filter(_category_filter(category))
    if without_reimbursement:
        qs = qs.filter(reimbursement__isnull=True)
    return qs


def _category_filter(category: str) -> Q:
    generalist = Q(doctor__specialization='')
    if category in ('generalist', 'generaliste'):
        return generalist
    if category in ('specialist', 'specialiste'):
        return ~generalist
    raise InvalidArgument(f'unknown doctor category {category}')


def statistics() -> dict:
    generalist = Q(doctor__specialization='')
    agg = Consultation.objects.aggregate(
        total=Count('id'),
        generalist=Count('id', filter=generalist),
        specialist=Count('id', filter=~generalist),
        total_cost=Sum('cost'),
        specialist_cost=Sum('cost', filter=~generalist),
    )
    specialist_cost = agg['specialist_cost'] or Decimal('0')
    return {
        'total': agg['total'],
        'generalist': agg['generalist'],
        'specialist': agg['specialist'],
        'totalCost': calculator.money(agg['total_cost'] or Decimal('0')),
        'specialistCost': calculator.money(specialist_cost),
        'specialistOutOfPocket': calculator.specialist_savings(specialist_cost),
    }
