"""
Field validation shared by the registration services.

All helpers raise :class:`insurance.exceptions.InvalidArgument` so a
rejected value surfaces as a 400 with the unified error envelope.
"""
from __future__ import annotations

import datetime
import re
from typing import Optional

from django.core.exceptions import ValidationError
from django.core.validators import validate_email as django_validate_email
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from insurance.exceptions import InvalidArgument
from insurance.models import PAYMENT_METHOD_CHOICES, Person

INSURANCE_NUMBER_RE = re.compile(r'^[0-9]{13}$')
PHONE_RE = re.compile(r'^\+?[0-9]{8,15}$')
MAX_AGE_YEARS = 150
SPECIALIZATION_MAX_LENGTH = 100

PAYMENT_METHODS = {value for value, _ in PAYMENT_METHOD_CHOICES}
GENDERS = {value for value, _ in Person.GENDER_CHOICES}


def require(value, label: str):
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidArgument(f'{label} is required')
    return value.strip() if isinstance(value, str) else value


def validate_email(value: Optional[str]) -> str:
    value = require(value, 'email').lower()
    try:
        django_validate_email(value)
    except ValidationError:
        raise InvalidArgument('email is not a valid address')
    return value


def validate_phone(value: Optional[str]) -> str:
    """Phone is optional; when present it must be 8 to 15 digits with an optional leading '+'."""
    value = (value or '').strip()
    if value and not PHONE_RE.match(value):
        raise InvalidArgument('phone must be 8 to 15 digits, optionally prefixed with +')
    return value


def validate_insurance_number(value: Optional[str]) -> str:
    value = require(value, 'insurance number')
    if not INSURANCE_NUMBER_RE.match(value):
        raise InvalidArgument('insurance number must be exactly 13 digits')
    return value


def validate_birth_date(value) -> datetime.date:
    value = require(value, 'birth date')
    if isinstance(value, str):
        try:
            value = datetime.date.fromisoformat(value)
        except ValueError:
            raise InvalidArgument('birth date must be an ISO date (YYYY-MM-DD)')
    today = timezone.localdate()
    if value > today:
        raise InvalidArgument('birth date cannot be in the future')
    try:
        oldest = today.replace(year=today.year - MAX_AGE_YEARS)
    except ValueError:
        # 29 February
        oldest = today.replace(year=today.year - MAX_AGE_YEARS, day=28)
    if value < oldest:
        raise InvalidArgument(f'birth date cannot be more than {MAX_AGE_YEARS} years ago')
    return value


def validate_gender(value: Optional[str]) -> str:
    value = require(value, 'gender')
    if value not in GENDERS:
        raise InvalidArgument(f'gender must be one of {sorted(GENDERS)}')
    return value


def validate_payment_method(value: Optional[str]) -> str:
    value = require(value, 'payment method')
    if value not in PAYMENT_METHODS:
        raise InvalidArgument(f'payment method must be one of {sorted(PAYMENT_METHODS)}')
    return value


def validate_specialization(value: Optional[str]) -> str:
    value = (value or '').strip()
    if len(value) > SPECIALIZATION_MAX_LENGTH:
        raise InvalidArgument(f'specialization cannot exceed {SPECIALIZATION_MAX_LENGTH} characters')
    return value


def parse_moment(value, label: str, *, end_of_day: bool = False) -> Optional[datetime.datetime]:
    """Parse an ISO date or datetime into an aware datetime.

    A bare date means the start of that day, or its last microsecond
    when ``end_of_day`` is set.
    """
    if value in (None, ''):
        return None
    if isinstance(value, datetime.datetime):
        moment = value
    elif isinstance(value, datetime.date):
        moment = datetime.datetime.combine(value, datetime.time.max if end_of_day else datetime.time.min)
    else:
        try:
            day = parse_date(str(value))
            moment = parse_datetime(str(value)) if day is None else None
        except ValueError:
            raise InvalidArgument(f'{label} is not a valid date')
        if day is not None:
            moment = datetime.datetime.combine(day, datetime.time.max if end_of_day else datetime.time.min)
        elif moment is None:
            raise InvalidArgument(f'{label} must be an ISO date or datetime')
    if timezone.is_naive(moment):
        moment = timezone.make_aware(moment)
    return moment


def parse_period(start, end):
    start = parse_moment(start, 'start date')
    end = parse_moment(end, 'end date', end_of_day=True)
    if start and end and start > end:
        raise InvalidArgument('start date must be before end date')
    return start, end
