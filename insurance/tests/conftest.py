import datetime
import itertools
from decimal import Decimal

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from insurance.models import Doctor, Insured, Person, User
from insurance.services.consultations import create_consultation


@pytest.fixture(autouse=True)
def _clear_cache():
    # throttling state lives in the cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def admin_user(db):
    return User.objects.create_user(username='admin1', password='Adm1n-Pass!', roles=[User.ROLE_ADMIN])


@pytest.fixture
def plain_user(db):
    return User.objects.create_user(username='agent1', password='Ag3nt-Pass!', roles=[User.ROLE_USER])


@pytest.fixture
def api(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client


@pytest.fixture
def make_person(db):
    counter = itertools.count(1)

    def _make(**kw):
        n = next(counter)
        data = {
            'name': f'Martin{n}',
            'first_name': 'Claire',
            'birth_date': datetime.date(1980, 5, 17),
            'gender': Person.GENDER_FEMALE,
            'address': '12 rue des Lilas, Lyon',
            'email': f'person{n}@example.org',
        }
        data.update(kw)
        return Person.objects.create(**data)

    return _make


@pytest.fixture
def generalist(make_person):
    return Doctor.objects.create(person=make_person(name='Bernard'), specialization='')


@pytest.fixture
def specialist(make_person):
    return Doctor.objects.create(person=make_person(name='Moreau'), specialization='Cardiologie')


@pytest.fixture
def insured(make_person):
    return Insured.objects.create(
        person=make_person(name='Durand'), insurance_number='1234567890123', payment_method='bank_transfer',
    )


@pytest.fixture
def consult(insured):
    """Factory recording a consultation through the service layer."""
    def _make(doctor, cost='50.00', **kw):
        return create_consultation(insured_id=insured.pk, doctor_id=doctor.pk, cost=Decimal(cost), **kw)
    return _make
