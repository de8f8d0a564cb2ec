from decimal import Decimal

import pytest

from insurance.exceptions import Conflict, InvalidArgument, InvalidState, NotFound
from insurance.models import AuditEvent, Reimbursement
from insurance.services import reimbursements as lifecycle

pytestmark = pytest.mark.django_db


def test_consultation_creates_pending_reimbursement(consult, generalist, specialist, insured):
    r1 = consult(generalist, '50.00').reimbursement
    r2 = consult(specialist, '50.00').reimbursement
    assert r1.status == Reimbursement.STATUS_PENDING
    assert r1.amount == Decimal('50.00')
    assert r2.amount == Decimal('40.00')
    assert r1.payment_method == insured.payment_method
    assert r1.processed_at is None


def test_process_sets_timestamp_and_is_not_repeatable(consult, generalist):
    r = consult(generalist).reimbursement
    done = lifecycle.process(r.id)
    assert done.status == Reimbursement.STATUS_PROCESSED
    assert done.processed_at is not None
    with pytest.raises(InvalidState):
        lifecycle.process(r.id)


def test_refuse_requires_reason_and_pending(consult, generalist):
    r = consult(generalist).reimbursement
    with pytest.raises(InvalidArgument):
        lifecycle.refuse(r.id, '   ')
    refused = lifecycle.refuse(r.id, 'Acte non couvert')
    assert refused.status == Reimbursement.STATUS_REFUSED
    assert refused.refusal_reason == 'Acte non couvert'
    assert refused.processed_at is not None
    with pytest.raises(InvalidState):
        lifecycle.process(r.id)
    with pytest.raises(InvalidState):
        lifecycle.refuse(r.id, 'again')


def test_revert_processing(consult, generalist):
    r = consult(generalist).reimbursement
    with pytest.raises(InvalidState):
        lifecycle.revert_processing(r.id)
    lifecycle.process(r.id)
    reverted = lifecycle.revert_processing(r.id)
    assert reverted.status == Reimbursement.STATUS_PENDING
    assert reverted.processed_at is None


def test_reprocess_after_revert_gets_fresh_timestamp(consult, generalist):
    r = consult(generalist).reimbursement
    first = lifecycle.process(r.id).processed_at
    lifecycle.revert_processing(r.id)
    again = lifecycle.process(r.id)
    assert again.status == Reimbursement.STATUS_PROCESSED
    assert again.processed_at > first


def test_second_process_on_same_row_fails(consult, generalist, monkeypatch):
    r = consult(generalist).reimbursement
    real_process = lifecycle.process

    def process_then_race(rid, **kw):
        # another worker processes the row between the listing and the lock
        real_process(rid)
        return real_process(rid, **kw)

    monkeypatch.setattr(lifecycle, 'process', process_then_race)
    assert lifecycle.process_all_pending() == []
    with pytest.raises(InvalidState):
        real_process(r.id)
    assert Reimbursement.objects.get(pk=r.id).status == Reimbursement.STATUS_PROCESSED


def test_change_method(consult, generalist):
    r = consult(generalist).reimbursement
    assert lifecycle.change_method(r.id, 'cash').payment_method == 'cash'
    with pytest.raises(InvalidArgument):
        lifecycle.change_method(r.id, None)
    with pytest.raises(InvalidArgument):
        lifecycle.change_method(r.id, 'cheque')
    lifecycle.process(r.id)
    with pytest.raises(InvalidState):
        lifecycle.change_method(r.id, 'bank_transfer')


def test_recalculate_follows_doctor_category(consult, generalist):
    c = consult(generalist, '100.00')
    generalist.specialization = 'Dermatologie'
    generalist.save()
    r = lifecycle.recalculate(c.reimbursement.id)
    assert r.amount == Decimal('80.00')
    lifecycle.process(r.id)
    with pytest.raises(InvalidState):
        lifecycle.recalculate(r.id)


def test_create_reimbursement_conflicts_and_not_found(consult, generalist):
    c = consult(generalist)
    with pytest.raises(Conflict):
        lifecycle.create_reimbursement(c.id)
    with pytest.raises(NotFound):
        lifecycle.create_reimbursement(999999)


def test_unique_constraint_is_reported_as_conflict(consult, generalist):
    c = consult(generalist)
    with pytest.raises(Conflict):
        lifecycle.attach_to_consultation(c)
    assert Reimbursement.objects.filter(consultation=c).count() == 1


def test_delete_only_while_pending_then_recreate(consult, generalist):
    c = consult(generalist)
    rid = c.reimbursement.id
    lifecycle.delete_reimbursement(rid)
    assert not Reimbursement.objects.filter(pk=rid).exists()
    r = lifecycle.create_reimbursement(c.id, 'cash')
    assert r.payment_method == 'cash'
    assert r.amount == Decimal('50.00')
    lifecycle.process(r.id)
    with pytest.raises(InvalidState):
        lifecycle.delete_reimbursement(r.id)


def test_process_all_pending_skips_non_pending(consult, generalist, specialist):
    a = consult(generalist).reimbursement
    b = consult(specialist).reimbursement
    c = consult(generalist).reimbursement
    lifecycle.refuse(c.id, 'doublon')
    done = lifecycle.process_all_pending()
    assert sorted(r.id for r in done) == sorted([a.id, b.id])
    assert Reimbursement.objects.get(pk=c.id).status == Reimbursement.STATUS_REFUSED


def test_statistics(consult, generalist, specialist):
    a = consult(generalist, '30.00').reimbursement
    consult(specialist, '100.00')
    lifecycle.process(a.id)
    stats = lifecycle.statistics()
    assert stats['counts'] == {'pending': 1, 'processed': 1, 'refused': 0}
    assert stats['processedAmount'] == Decimal('30.00')
    assert stats['pendingAmount'] == Decimal('80.00')


def test_breakdown(consult, specialist):
    r = consult(specialist, '60.00').reimbursement
    b = lifecycle.breakdown(r.id)
    assert b['rate'] == Decimal('0.80')
    assert b['percentage'] == Decimal('80.00')
    assert b['outOfPocket'] == Decimal('12.00')
    assert b['verified'] is True
    assert b['formatted']['amount'] == '48.00 €'


@pytest.mark.parametrize('doctor, cost, amount, remaining', [
    ('generalist', '100.00', '100.00', '0.00'),
    ('specialist', '50.00', '40.00', '10.00'),
])
def test_breakdown_scenarios(request, consult, doctor, cost, amount, remaining):
    r = consult(request.getfixturevalue(doctor), cost).reimbursement
    b = lifecycle.breakdown(r.id)
    assert r.amount == Decimal(amount)
    assert b['outOfPocket'] == Decimal(remaining)


def test_change_method_after_process_fails(consult, generalist):
    r = consult(generalist).reimbursement
    done = lifecycle.process(r.id)
    assert done.status == Reimbursement.STATUS_PROCESSED
    assert done.processed_at is not None
    with pytest.raises(InvalidState):
        lifecycle.change_method(r.id, 'cash')


def test_list_filters(consult, generalist, insured):
    r = consult(generalist).reimbursement
    consult(generalist)
    lifecycle.process(r.id)
    assert [x.id for x in lifecycle.list_reimbursements(status='processed')] == [r.id]
    assert lifecycle.list_reimbursements(insured_id=insured.pk).count() == 2
    with pytest.raises(NotFound):
        list(lifecycle.list_reimbursements(insured_id=424242))
    with pytest.raises(InvalidArgument):
        lifecycle.list_reimbursements(start='2024-02-01', end='2024-01-01')
    with pytest.raises(InvalidArgument):
        lifecycle.list_reimbursements(status='paid')


def test_transitions_are_audited(consult, generalist, admin_user):
    r = consult(generalist).reimbursement
    lifecycle.process(r.id, actor=admin_user)
    ev = AuditEvent.objects.get(action='reimbursement.process')
    assert ev.user == admin_user
    assert ev.object_id == r.id
