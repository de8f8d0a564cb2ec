from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import bleach
from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Q

from insurance.exceptions import Conflict, InvalidArgument, NotFound
from insurance.models import Doctor, Insured, Media, Person
from insurance.services.audit import log_action
from insurance.validators import (
    require,
    validate_birth_date,
    validate_email,
    validate_gender,
    validate_phone,
)

logger = logging.getLogger(__name__)


def _text(value: Optional[str]) -> str:
    return bleach.clean((value or '').strip(), strip=True)


def clean_person_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate the civil fields of a person and return them normalised."""
    return {
        'name': _text(require(data.get('name'), 'name')),
        'first_name': _text(data.get('first_name')),
        'birth_date': validate_birth_date(data.get('birth_date')),
        'gender': validate_gender(data.get('gender')),
        'address': _text(require(data.get('address'), 'address')),
        'phone': validate_phone(data.get('phone')),
        'email': validate_email(data.get('email')),
    }


def ensure_email_free(email: str, exclude_id: Optional[int] = None) -> None:
    qs = Person.objects.filter(email__iexact=email)
    if exclude_id is not None:
        qs = qs.exclude(pk=exclude_id)
    if qs.exists():
        raise Conflict(f'email {email} is already used')


def get_person(person_id: int) -> Person:
    p = Person.objects.select_related('photo').filter(pk=person_id).first()
    if not p:
        raise NotFound(f'person {person_id} not found')
    return p


def person_exists(person_id: int) -> bool:
    return Person.objects.filter(pk=person_id).exists()


def build_person(data: Dict[str, Any]) -> Person:
    """Insert a person inside the caller's transaction."""
    fields = clean_person_fields(data)
    ensure_email_free(fields['email'])
    try:
        with transaction.atomic():
            return Person.objects.create(**fields)
    except IntegrityError:
        raise Conflict(f"email {fields['email']} is already used")


@transaction.atomic
def create_person(data: Dict[str, Any], *, actor=None) -> Person:
    person = build_person(data)
    log_action(user=actor, action='person.create', object_type='person', object_id=person.id)
    logger.info(f"Person {person.id} registered")
    return person


@transaction.atomic
def update_person(person_id: int, data: Dict[str, Any], *, actor=None) -> Person:
    person = Person.objects.select_for_update().filter(pk=person_id).first()
    if not person:
        raise NotFound(f'person {person_id} not found')
    fields = clean_person_fields(data)
    ensure_email_free(fields['email'], exclude_id=person.id)
    for key, value in fields.items():
        setattr(person, key, value)
    try:
        with transaction.atomic():
            person.save()
    except IntegrityError:
        raise Conflict(f"email {fields['email']} is already used")
    log_action(user=actor, action='person.update', object_type='person', object_id=person.id)
    logger.info(f"Person {person.id} updated")
    return person


def _drop_media(media: Optional[Media]) -> None:
    if media is None:
        return
    storage, name = media.file.storage, media.file.name
    media.delete()
    if name:
        # storage is not transactional
        transaction.on_commit(lambda: storage.delete(name))


@transaction.atomic
def delete_person(person_id: int, *, actor=None) -> None:
    person = Person.objects.select_for_update().filter(pk=person_id).first()
    if not person:
        raise NotFound(f'person {person_id} not found')
    if Insured.objects.filter(pk=person.pk).exists():
        logger.warning(f"Rejected deletion of person {person.id}: registered as insured")
        raise Conflict('this person is registered as insured and cannot be deleted')
    if Doctor.objects.filter(pk=person.pk).exists():
        logger.warning(f"Rejected deletion of person {person.id}: registered as doctor")
        raise Conflict('this person is registered as doctor and cannot be deleted')
    photo = person.photo
    person.delete()
    _drop_media(photo)
    log_action(user=actor, action='person.delete', object_type='person', object_id=person_id)
    logger.info(f"Person {person_id} deleted")


def search_persons(*, name: Optional[str] = None, email: Optional[str] = None, phone: Optional[str] = None):
    qs = Person.objects.select_related('photo').order_by('name', 'first_name', 'id')
    if name is not None:
        name = name.strip()
        if not name:
            raise InvalidArgument('search name cannot be empty')
        qs = qs.filter(Q(name__icontains=name) | Q(first_name__icontains=name))
    if email:
        qs = qs.filter(email__iexact=email.strip())
    if phone:
        qs = qs.filter(phone=phone.strip())
    return qs


@transaction.atomic
def upload_photo(person_id: int, upload, *, actor=None) -> Person:
    """Store ``upload`` as the photo of a person, replacing any previous one."""
    person = Person.objects.select_for_update().select_related('photo').filter(pk=person_id).first()
    if not person:
        raise NotFound(f'person {person_id} not found')
    if upload is None:
        raise InvalidArgument('a file is required')
    max_bytes = settings.UPLOAD_MAX_MB * 1024 * 1024
    if upload.size > max_bytes:
        raise InvalidArgument(f'file exceeds {settings.UPLOAD_MAX_MB} MB')
    content_type = getattr(upload, 'content_type', '') or ''
    if not any(content_type.startswith(t.strip()) for t in settings.ALLOWED_UPLOAD_TYPES if t.strip()):
        raise InvalidArgument(f'file type {content_type or "unknown"} is not allowed')

    old = person.photo
    media = Media.objects.create(
        file=upload,
        original_name=(upload.name or '')[:255],
        content_type=content_type,
        size=upload.size,
    )
    person.photo = media
    person.save(update_fields=['photo'])
    _drop_media(old)
    log_action(user=actor, action='person.photo', object_type='person', object_id=person.id,
               detail={'media': media.id})
    logger.info(f"Photo {media.id} stored for person {person.id}")
    return person
