"""
Login accounts and token issuance.

Roles are an explicit list stored on the account.  Access and refresh
tokens are issued by djangorestframework-simplejwt and carry the roles
in a ``roles`` claim; they are signed with ``SIMPLE_JWT['SIGNING_KEY']``.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from rest_framework_simplejwt.tokens import RefreshToken

from insurance.exceptions import Conflict, InvalidArgument, NotFound
from insurance.models import Person, User
from insurance.services.audit import log_action

logger = logging.getLogger(__name__)

DEFAULT_ROLES = [User.ROLE_USER]


def clean_roles(roles: Optional[Iterable[str]]) -> list[str]:
    if roles is None:
        return list(DEFAULT_ROLES)
    if isinstance(roles, str):
        roles = [roles]
    cleaned = []
    for role in roles:
        role = str(role).strip().upper()
        if role not in User.ROLES:
            raise InvalidArgument(f'unknown role {role}; expected one of {list(User.ROLES)}')
        if role not in cleaned:
            cleaned.append(role)
    return cleaned or list(DEFAULT_ROLES)


@transaction.atomic
def register_account(username: str, password: str, roles: Optional[Iterable[str]] = None,
                     person_id: Optional[int] = None, *, actor=None) -> User:
    username = (username or '').strip()
    if not username:
        raise InvalidArgument('username is required')
    if not password:
        raise InvalidArgument('password is required')
    roles = clean_roles(roles)
    if User.objects.filter(username__iexact=username).exists():
        raise Conflict(f'username {username} is already taken')

    person = None
    if person_id not in (None, ''):
        person = Person.objects.filter(pk=person_id).first()
        if not person:
            raise NotFound(f'person {person_id} not found')
        if User.objects.filter(person=person).exists():
            raise Conflict(f'person {person_id} already has an account')

    user = User(username=username, roles=roles, person=person)
    try:
        validate_password(password, user)
    except ValidationError as e:
        raise InvalidArgument(' '.join(e.messages))
    user.set_password(password)
    user.is_staff = User.ROLE_ADMIN in roles
    try:
        with transaction.atomic():
            user.save()
    except IntegrityError:
        raise Conflict(f'username {username} is already taken')
    log_action(user=actor or user, action='account.register', object_type='user', object_id=user.id,
               detail={'roles': roles})
    logger.info(f"Account {user.username} registered with roles {roles}")
    return user


def issue_tokens(user: User) -> dict:
    refresh = RefreshToken.for_user(user)
    refresh['roles'] = list(user.roles or [])
    refresh['username'] = user.username
    return {
        'jwt_access': str(refresh.access_token),
        'jwt_refresh': str(refresh),
    }


def account_payload(user: User) -> dict:
    return {
        'id': user.id,
        'username': user.username,
        'roles': list(user.roles or []),
        'personId': user.person_id,
    }
