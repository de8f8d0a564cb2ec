import datetime
from decimal import Decimal

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.utils import timezone
from rest_framework_simplejwt.tokens import AccessToken

from insurance.exceptions import Conflict, Forbidden, InvalidArgument, NotFound
from insurance.models import Consultation, Doctor, Insured, Person, Prescription, Reimbursement, User
from insurance.services import accounts, consultations, doctors, insured as insured_service, persons, prescriptions
from insurance.services import reimbursements as lifecycle

pytestmark = pytest.mark.django_db


def _person_data(**kw):
    data = {
        'name': 'Petit',
        'first_name': 'Louis',
        'birth_date': '1975-03-02',
        'gender': 'M',
        'address': '3 avenue Foch, Paris',
        'phone': '+33612345678',
        'email': 'louis.petit@example.org',
    }
    data.update(kw)
    return data


# ---------------------------------------------------------------------
# Consultations
# ---------------------------------------------------------------------
def test_consultation_requires_existing_insured_and_doctor(insured, generalist):
    with pytest.raises(NotFound):
        consultations.create_consultation(insured_id=999, doctor_id=generalist.pk, cost='20')
    with pytest.raises(NotFound):
        consultations.create_consultation(insured_id=insured.pk, doctor_id=999, cost='20')


@pytest.mark.parametrize('cost', [None, '0', '-10'])
def test_consultation_cost_must_be_positive(insured, generalist, cost):
    with pytest.raises(InvalidArgument):
        consultations.create_consultation(insured_id=insured.pk, doctor_id=generalist.pk, cost=cost)
    assert Consultation.objects.count() == 0


def test_consultation_date_defaults_to_now(consult, generalist):
    before = timezone.now()
    c = consult(generalist)
    assert c.date >= before


def test_specialist_cannot_prescribe_with_consultation(insured, specialist):
    with pytest.raises(Forbidden):
        consultations.create_consultation(
            insured_id=insured.pk, doctor_id=specialist.pk, cost='60',
            prescriptions=[{'type': 'medication', 'medication_details': 'Paracétamol 1g'}],
        )
    assert Consultation.objects.count() == 0
    assert Reimbursement.objects.count() == 0


def test_invalid_prescription_leaves_nothing_behind(insured, generalist):
    with pytest.raises(InvalidArgument):
        consultations.create_consultation(
            insured_id=insured.pk, doctor_id=generalist.pk, cost='25',
            prescriptions=[
                {'type': 'medication', 'medication_details': 'Ibuprofène'},
                {'type': 'medication', 'medication_details': ''},
            ],
        )
    assert Consultation.objects.count() == 0
    assert Prescription.objects.count() == 0


def test_consultation_with_prescriptions(consult, generalist, specialist):
    c = consult(generalist, prescriptions=[
        {'type': 'medication', 'medication_details': 'Amoxicilline'},
        {'type': 'specialist_referral', 'specialist_id': specialist.pk},
    ])
    assert c.prescriptions.count() == 2
    assert c.reimbursement.amount == Decimal('50.00')


def test_update_consultation_recalculates_pending_amount(consult, specialist):
    c = consult(specialist, '50.00')
    updated = consultations.update_consultation(c.id, cost=Decimal('75.00'), notes='contrôle')
    assert updated.reimbursement.amount == Decimal('60.00')
    assert updated.notes == 'contrôle'
    with pytest.raises(InvalidArgument):
        consultations.update_consultation(c.id, cost=Decimal('0'))


def test_processed_consultation_is_frozen(consult, generalist):
    c = consult(generalist)
    lifecycle.process(c.reimbursement.id)
    with pytest.raises(Conflict):
        consultations.update_consultation(c.id, cost=Decimal('10'))
    with pytest.raises(Conflict):
        consultations.delete_consultation(c.id)


def test_delete_consultation_cascades(consult, generalist):
    c = consult(generalist, prescriptions=[{'type': 'medication', 'medication_details': 'Doliprane'}])
    consultations.delete_consultation(c.id)
    assert not Consultation.objects.filter(pk=c.id).exists()
    assert Prescription.objects.count() == 0
    assert Reimbursement.objects.count() == 0


def test_consultation_queries_and_stats(consult, generalist, specialist, insured):
    consult(generalist, '20.00')
    consult(specialist, '100.00')
    assert consultations.list_consultations(category='generaliste').count() == 1
    assert consultations.list_consultations(category='specialist').count() == 1
    assert consultations.list_consultations(insured_id=insured.pk).count() == 2
    today = timezone.localdate().isoformat()
    assert consultations.list_consultations(start=today, end=today).count() == 2
    stats = consultations.statistics()
    assert (stats['total'], stats['generalist'], stats['specialist']) == (2, 1, 1)
    assert stats['specialistOutOfPocket'] == Decimal('20.00')
    with pytest.raises(InvalidArgument):
        consultations.list_consultations(category='chirurgien')


# ---------------------------------------------------------------------
# Prescriptions
# ---------------------------------------------------------------------
def test_only_generalist_can_prescribe(consult, specialist):
    c = consult(specialist)
    with pytest.raises(Forbidden):
        prescriptions.add_prescription(c.id, type='medication', medication_details='Aspirine')


def test_prescription_field_rules(consult, generalist, specialist):
    c = consult(generalist)
    with pytest.raises(InvalidArgument):
        prescriptions.add_prescription(c.id, type=None)
    with pytest.raises(InvalidArgument):
        prescriptions.add_prescription(c.id, type='medication', medication_details='  ')
    with pytest.raises(InvalidArgument):
        prescriptions.add_prescription(c.id, type='specialist_referral')
    with pytest.raises(NotFound):
        prescriptions.add_prescription(c.id, type='specialist_referral', specialist_id=987654)
    with pytest.raises(InvalidArgument):
        prescriptions.add_prescription(c.id, type='specialist_referral', specialist_id=generalist.pk)
    p = prescriptions.add_prescription(c.id, type='specialist_referral', specialist_id=specialist.pk)
    assert p.specialist == specialist


def test_prescription_cannot_move_to_another_consultation(consult, generalist):
    c1 = consult(generalist)
    c2 = consult(generalist)
    p = prescriptions.add_prescription(c1.id, type='medication', medication_details='Vitamine D')
    with pytest.raises(InvalidArgument):
        prescriptions.update_prescription(p.id, type='medication', medication_details='Vitamine D',
                                          consultation_id=c2.id)
    p = prescriptions.update_prescription(p.id, type='medication', medication_details='Vitamine C')
    assert p.medication_details == 'Vitamine C'


def test_prescription_counts_per_insured(consult, generalist, specialist, insured):
    consult(generalist, prescriptions=[
        {'type': 'medication', 'medication_details': 'A'},
        {'type': 'medication', 'medication_details': 'B'},
        {'type': 'specialist_referral', 'specialist_id': specialist.pk},
    ])
    counts = prescriptions.counts_for_insured(insured.pk)
    assert counts['counts'] == {'medication': 2, 'specialist_referral': 1}
    assert prescriptions.list_prescriptions(specialist_id=specialist.pk).count() == 1
    with pytest.raises(NotFound):
        prescriptions.counts_for_insured(123456)


# ---------------------------------------------------------------------
# Referring doctor
# ---------------------------------------------------------------------
def test_referring_doctor_must_be_a_generalist(insured, generalist, specialist):
    with pytest.raises(Forbidden):
        insured_service.set_referring_doctor(insured.pk, specialist.pk)
    with pytest.raises(NotFound):
        insured_service.set_referring_doctor(insured.pk, 31337)
    i = insured_service.set_referring_doctor(insured.pk, generalist.pk)
    assert i.referring_doctor == generalist
    assert insured_service.set_referring_doctor(insured.pk, None).referring_doctor is None


def test_referring_doctor_cannot_become_specialist(insured, generalist):
    insured_service.set_referring_doctor(insured.pk, generalist.pk)
    with pytest.raises(Conflict):
        doctors.update_doctor(generalist.pk, {'specialization': 'Cardiologie'})
    insured.refresh_from_db()
    assert insured.referring_doctor.is_generalist
    # same category is accepted
    assert doctors.update_doctor(generalist.pk, {'specialization': ''}).is_generalist


def test_referral_target_cannot_become_generalist(consult, generalist, specialist):
    c = consult(generalist)
    p = prescriptions.add_prescription(c.id, type='specialist_referral', specialist_id=specialist.pk)
    with pytest.raises(Conflict):
        doctors.update_doctor(specialist.pk, {'specialization': ''})
    p.refresh_from_db()
    assert not p.specialist.is_generalist
    assert doctors.update_doctor(specialist.pk, {'specialization': 'Neurologie'}).specialization == 'Neurologie'


def test_update_doctor_keeps_specialization_when_omitted(specialist):
    d = doctors.update_doctor(specialist.pk, {})
    assert d.specialization == 'Cardiologie'


def test_replaced_photo_file_is_removed_on_commit(make_person, settings, tmp_path,
                                                  django_capture_on_commit_callbacks):
    settings.MEDIA_ROOT = tmp_path
    p = make_person()
    png = b'\x89PNG\r\n\x1a\n' + b'\x00' * 32
    first = persons.upload_photo(p.id, SimpleUploadedFile('a.png', png, content_type='image/png')).photo
    first_name = first.file.name
    assert first.file.storage.exists(first_name)
    with django_capture_on_commit_callbacks(execute=False) as callbacks:
        persons.upload_photo(p.id, SimpleUploadedFile('b.png', png, content_type='image/png'))
    # the file outlives the row until commit
    assert first.file.storage.exists(first_name)
    for callback in callbacks:
        callback()
    assert not first.file.storage.exists(first_name)


# ---------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------
def test_register_insured_with_new_person():
    i = insured_service.register_insured(_person_data(insurance_number='1985030212345', payment_method='cash'))
    assert i.person.email == 'louis.petit@example.org'
    assert i.payment_method == 'cash'


@pytest.mark.parametrize('number', ['123', '12345678901234', '12345678901a3', None])
def test_insurance_number_format(number):
    with pytest.raises(InvalidArgument):
        insured_service.register_insured(_person_data(insurance_number=number, payment_method='cash'))
    assert Person.objects.count() == 0


def test_uniqueness_conflicts(insured):
    with pytest.raises(Conflict):
        insured_service.register_insured(
            _person_data(insurance_number=insured.insurance_number, payment_method='cash')
        )
    with pytest.raises(Conflict):
        persons.create_person(_person_data(email=insured.person.email))


@pytest.mark.parametrize('field,value', [
    ('birth_date', (datetime.date.today() + datetime.timedelta(days=2)).isoformat()),
    ('birth_date', '1850-01-01'),
    ('phone', '12-34'),
    ('email', 'not-an-email'),
    ('gender', 'X'),
    ('name', ''),
    ('address', None),
])
def test_person_field_validation(field, value):
    with pytest.raises(InvalidArgument):
        persons.create_person(_person_data(**{field: value}))


def test_register_on_existing_person(make_person):
    p = make_person()
    d = doctors.register_doctor({'person_id': p.pk, 'specialization': ''})
    assert d.is_generalist
    with pytest.raises(Conflict):
        doctors.register_doctor({'person_id': p.pk})
    i = insured_service.register_insured({'person_id': p.pk, 'insurance_number': '5555555555555',
                                          'payment_method': 'bank_transfer'})
    assert i.pk == p.pk
    with pytest.raises(NotFound):
        doctors.register_doctor({'person_id': 777777})


def test_specialization_length():
    with pytest.raises(InvalidArgument):
        doctors.register_doctor(_person_data(specialization='x' * 101))
    d = doctors.register_doctor(_person_data(specialization='Neurologie'))
    assert not d.is_generalist
    assert doctors.specializations() == ['Neurologie']


# ---------------------------------------------------------------------
# Deletion guards
# ---------------------------------------------------------------------
def test_deletion_guards(consult, insured, generalist, specialist, make_person):
    consult(specialist)
    with pytest.raises(Conflict):
        insured_service.delete_insured(insured.pk)
    with pytest.raises(Conflict):
        doctors.delete_doctor(specialist.pk)
    other = Insured.objects.create(person=make_person(), insurance_number='9999999999999',
                                   payment_method='cash', referring_doctor=generalist)
    with pytest.raises(Conflict):
        doctors.delete_doctor(generalist.pk)
    with pytest.raises(Conflict):
        persons.delete_person(insured.pk)
    insured_service.set_referring_doctor(other.pk, None)
    doctors.delete_doctor(generalist.pk)
    assert not Doctor.objects.filter(pk=generalist.pk).exists()
    assert Person.objects.filter(pk=generalist.pk).exists()
    persons.delete_person(generalist.pk)
    assert not Person.objects.filter(pk=generalist.pk).exists()


# ---------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------
def test_register_account_roles():
    u = accounts.register_account('lea', 'Un-Mot-De-Passe-42')
    assert u.roles == [User.ROLE_USER]
    u = accounts.register_account('dr.house', 'Un-Mot-De-Passe-42', ['doctor', 'USER'])
    assert u.roles == [User.ROLE_DOCTOR, User.ROLE_USER]
    with pytest.raises(InvalidArgument):
        accounts.register_account('x', 'Un-Mot-De-Passe-42', ['ROOT'])
    with pytest.raises(Conflict):
        accounts.register_account('LEA', 'Un-Mot-De-Passe-42')
    with pytest.raises(InvalidArgument):
        accounts.register_account('weak', '123')


def test_tokens_carry_roles():
    u = accounts.register_account('agent', 'Un-Mot-De-Passe-42', ['INSURED'])
    tokens = accounts.issue_tokens(u)
    access = AccessToken(tokens['jwt_access'])
    assert access['roles'] == ['INSURED']
    assert str(access['user_id']) == str(u.id)
