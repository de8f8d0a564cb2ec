"""
Reimbursement lifecycle.

A reimbursement starts PENDING and moves through explicit transitions::

    PENDING --process--> PROCESSED --revert_processing--> PENDING
    PENDING --refuse-->  REFUSED

Every transition locks the row with ``select_for_update`` and checks the
status on the locked row, so of two racing transitions at most one
succeeds and the other fails with :class:`InvalidState`.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

import bleach
from django.db import IntegrityError, transaction
from django.db.models import Count, Sum
from django.utils import timezone

from insurance.exceptions import Conflict, InvalidArgument, InvalidState, NotFound
from insurance.models import Consultation, Insured, Reimbursement
from insurance.services import calculator
from insurance.services.audit import log_action
from insurance.validators import parse_period, validate_payment_method

logger = logging.getLogger(__name__)

_RELATED = ('consultation__doctor__person', 'consultation__insured__person')


def amount_for(consultation: Consultation) -> Decimal:
    return calculator.calculate(consultation.cost, consultation.doctor.is_generalist)


def get_reimbursement(reimbursement_id: int) -> Reimbursement:
    r = Reimbursement.objects.select_related(*_RELATED).filter(pk=reimbursement_id).first()
    if not r:
        raise NotFound(f'reimbursement {reimbursement_id} not found')
    return r


def _locked(reimbursement_id: int) -> Reimbursement:
    try:
        return Reimbursement.objects.select_for_update().get(pk=reimbursement_id)
    except Reimbursement.DoesNotExist:
        raise NotFound(f'reimbursement {reimbursement_id} not found')


def _require_status(r: Reimbursement, expected: str, action: str) -> None:
    if r.status != expected:
        logger.warning(f"Rejected {action} on reimbursement {r.id}: status is {r.status}")
        raise InvalidState(f'cannot {action} a reimbursement with status {r.status}')


def _reject_processed(r: Reimbursement, action: str) -> None:
    if r.status == Reimbursement.STATUS_PROCESSED:
        logger.warning(f"Rejected {action} on processed reimbursement {r.id}")
        raise InvalidState(f'cannot {action} a processed reimbursement')


def _audit(actor, action: str, r: Reimbursement, **detail) -> None:
    log_action(user=actor, action=action, object_type='reimbursement', object_id=r.id,
               detail={'status': r.status, **detail})


def attach_to_consultation(consultation: Consultation, payment_method: Optional[str] = None) -> Reimbursement:
    """Create the PENDING reimbursement of ``consultation``.

    Must run inside the caller's transaction.  A concurrent insert for
    the same consultation trips the unique constraint and is reported
    as :class:`Conflict`.
    """
    method = validate_payment_method(payment_method) if payment_method else consultation.insured.payment_method
    try:
        with transaction.atomic():
            return Reimbursement.objects.create(
                consultation=consultation,
                amount=amount_for(consultation),
                payment_method=method,
                status=Reimbursement.STATUS_PENDING,
            )
    except IntegrityError:
        raise Conflict(f'consultation {consultation.id} already has a reimbursement')


@transaction.atomic
def create_reimbursement(consultation_id: int, payment_method: Optional[str] = None, *, actor=None) -> Reimbursement:
    consultation = (
        Consultation.objects.select_related('doctor', 'insured').filter(pk=consultation_id).first()
    )
    if not consultation:
        raise NotFound(f'consultation {consultation_id} not found')
    if Reimbursement.objects.filter(consultation_id=consultation.id).exists():
        raise Conflict(f'consultation {consultation_id} already has a reimbursement')
    r = attach_to_consultation(consultation, payment_method)
    logger.info(f"Reimbursement {r.id} created for consultation {consultation.id}: {r.amount}")
    _audit(actor, 'reimbursement.create', r, amount=str(r.amount))
    return r


@transaction.atomic
def process(reimbursement_id: int, *, actor=None) -> Reimbursement:
    r = _locked(reimbursement_id)
    _require_status(r, Reimbursement.STATUS_PENDING, 'process')
    r.status = Reimbursement.STATUS_PROCESSED
    r.processed_at = timezone.now()
    r.save(update_fields=['status', 'processed_at'])
    logger.info(f"Reimbursement {r.id} processed")
    _audit(actor, 'reimbursement.process', r)
    return r


@transaction.atomic
def refuse(reimbursement_id: int, reason: Optional[str], *, actor=None) -> Reimbursement:
    reason = bleach.clean((reason or '').strip(), strip=True)
    if not reason:
        raise InvalidArgument('a refusal reason is required')
    r = _locked(reimbursement_id)
    _require_status(r, Reimbursement.STATUS_PENDING, 'refuse')
    r.status = Reimbursement.STATUS_REFUSED
    r.processed_at = timezone.now()
    r.refusal_reason = reason
    r.save(update_fields=['status', 'processed_at', 'refusal_reason'])
    logger.info(f"Reimbursement {r.id} refused")
    _audit(actor, 'reimbursement.refuse', r, reason=reason)
    return r


@transaction.atomic
def revert_processing(reimbursement_id: int, *, actor=None) -> Reimbursement:
    r = _locked(reimbursement_id)
    _require_status(r, Reimbursement.STATUS_PROCESSED, 'revert')
    r.status = Reimbursement.STATUS_PENDING
    r.processed_at = None
    r.save(update_fields=['status', 'processed_at'])
    logger.info(f"Reimbursement {r.id} reverted to pending")
    _audit(actor, 'reimbursement.revert', r)
    return r


@transaction.atomic
def change_method(reimbursement_id: int, method: Optional[str], *, actor=None) -> Reimbursement:
    method = validate_payment_method(method)
    r = _locked(reimbursement_id)
    _reject_processed(r, 'change the payment method of')
    r.payment_method = method
    r.save(update_fields=['payment_method'])
    logger.info(f"Reimbursement {r.id} payment method set to {method}")
    _audit(actor, 'reimbursement.change_method', r, method=method)
    return r


@transaction.atomic
def recalculate(reimbursement_id: int, *, actor=None) -> Reimbursement:
    r = _locked(reimbursement_id)
    _reject_processed(r, 'recalculate')
    consultation = Consultation.objects.select_related('doctor').get(pk=r.consultation_id)
    old = r.amount
    r.amount = amount_for(consultation)
    r.save(update_fields=['amount'])
    logger.info(f"Reimbursement {r.id} recalculated: {old} -> {r.amount}")
    _audit(actor, 'reimbursement.recalculate', r, old=str(old), new=str(r.amount))
    return r


def process_all_pending(*, actor=None) -> list[Reimbursement]:
    """Process every pending reimbursement, one transaction per record.

    Records whose status changed between the listing and the lock are
    skipped.
    """
    ids = list(
        Reimbursement.objects.filter(status=Reimbursement.STATUS_PENDING).order_by('id').values_list('id', flat=True)
    )
    done = []
    for rid in ids:
        try:
            done.append(process(rid, actor=actor))
        except (InvalidState, NotFound):
            logger.info(f"Reimbursement {rid} skipped during batch processing")
    logger.info(f"Batch processing: {len(done)}/{len(ids)} reimbursements processed")
    return done


@transaction.atomic
def delete_reimbursement(reimbursement_id: int, *, actor=None) -> None:
    r = _locked(reimbursement_id)
    _require_status(r, Reimbursement.STATUS_PENDING, 'delete')
    _audit(actor, 'reimbursement.delete', r, consultation=r.consultation_id)
    r.delete()
    logger.info(f"Reimbursement {reimbursement_id} deleted")


# ---------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------
def list_reimbursements(*, status: Optional[str] = None, payment_method: Optional[str] = None,
                        insured_id: Optional[int] = None,
                        start=None, end=None):
    qs = Reimbursement.objects.select_related(*_RELATED).order_by('-created_at', '-id')
    if status:
        if status not in dict(Reimbursement.STATUS_CHOICES):
            raise InvalidArgument(f'unknown status {status}')
        qs = qs.filter(status=status)
    if payment_method:
        qs = qs.filter(payment_method=validate_payment_method(payment_method))
    if insured_id is not None:
        if not Insured.objects.filter(pk=insured_id).exists():
            raise NotFound(f'insured {insured_id} not found')
        qs = qs.filter(consultation__insured_id=insured_id)
    start, end = parse_period(start, end)
    if start:
        qs = qs.filter(processed_at__gte=start)
    if end:
        qs = qs.filter(processed_at__lte=end)
    return qs


def for_consultation(consultation_id: int) -> Reimbursement:
    if not Consultation.objects.filter(pk=consultation_id).exists():
        raise NotFound(f'consultation {consultation_id} not found')
    r = Reimbursement.objects.select_related(*_RELATED).filter(consultation_id=consultation_id).first()
    if not r:
        raise NotFound(f'consultation {consultation_id} has no reimbursement')
    return r


def statistics() -> dict:
    counts = {s: 0 for s, _ in Reimbursement.STATUS_CHOICES}
    for row in Reimbursement.objects.values('status').annotate(n=Count('id')):
        counts[row['status']] = row['n']
    sums = {
        row['status']: row['total']
        for row in Reimbursement.objects.values('status').annotate(total=Sum('amount'))
    }
    return {
        'counts': counts,
        'total': sum(counts.values()),
        'processedAmount': calculator.money(sums.get(Reimbursement.STATUS_PROCESSED) or Decimal('0')),
        'pendingAmount': calculator.money(sums.get(Reimbursement.STATUS_PENDING) or Decimal('0')),
    }


def breakdown(reimbursement_id: int) -> dict:
    """Calculator view of one reimbursement against its consultation."""
    r = get_reimbursement(reimbursement_id)
    consultation = r.consultation
    generalist = consultation.doctor.is_generalist
    pct = calculator.percentage(r.amount, consultation.cost)
    remaining = calculator.out_of_pocket(consultation.cost, r.amount)
    return {
        'reimbursement': r,
        'cost': consultation.cost,
        'rate': calculator.rate_for(generalist),
        'category': consultation.doctor.category,
        'percentage': pct,
        'outOfPocket': remaining,
        'verified': calculator.verify(r.amount, consultation.cost, generalist),
        'formatted': {
            'cost': calculator.format_amount(consultation.cost),
            'amount': calculator.format_amount(r.amount),
            'outOfPocket': calculator.format_amount(remaining),
            'percentage': calculator.format_percentage(pct),
        },
    }
