"""
Authentication views.

Accounts are registered with an explicit list of roles.  Login returns a
simplejwt refresh/access pair whose claims carry those roles; refresh
and logout operate on the refresh token.  The bearer authentication
class itself lives in ``insurance.authentication`` to avoid circular
imports when DRF initialises authentication classes.
"""
from __future__ import annotations

import logging

from django.contrib.auth import authenticate
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from rest_framework_simplejwt.serializers import TokenRefreshSerializer
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import RefreshToken

from insurance.exceptions import Forbidden, InvalidArgument
from insurance.models import User
from insurance.serializers.auth import LoginSerializer, LogoutSerializer, RegisterSerializer
from insurance.services.accounts import account_payload, clean_roles, issue_tokens, register_account
from insurance.services.audit import log_action

logger = logging.getLogger(__name__)


@api_view(['POST'])
@permission_classes([AllowAny])
def register_view(request):
    """Create an account.

    Anyone may register USER, INSURED or DOCTOR accounts; granting the
    ADMIN role requires an authenticated administrator.
    """
    s = RegisterSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    roles = clean_roles(vd.get('roles'))
    caller = request.user if request.user and request.user.is_authenticated else None
    if User.ROLE_ADMIN in roles and not (caller and caller.has_role(User.ROLE_ADMIN)):
        logger.warning(f"Rejected ADMIN registration for {vd['username']}")
        raise Forbidden('only an administrator can grant the ADMIN role')
    user = register_account(vd['username'], vd['password'], roles, vd.get('person_id'), actor=caller)
    return Response({'ok': True, 'data': account_payload(user)}, status=201)


register_view.cls.throttle_scope = 'login'


@api_view(['POST'])
@permission_classes([AllowAny])
def login_view(request):
    """Username/password login returning ``jwt_access`` and ``jwt_refresh``."""
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data

    user = authenticate(request, username=vd['username'], password=vd['password'])
    if not user:
        log_action(user=None, action='login', object_type='user',
                   detail={'result': 'fail', 'username': vd['username'], 'ip': request.META.get('REMOTE_ADDR')})
        logger.warning(f"Failed login for {vd['username']}")
        raise AuthenticationFailed('invalid username or password')

    log_action(user=user, action='login', object_type='user', object_id=user.id,
               detail={'result': 'ok', 'ip': request.META.get('REMOTE_ADDR')})
    payload = {'ok': True, **issue_tokens(user), 'user': account_payload(user)}
    return Response(payload)


# DRF ScopedRateThrottle reads throttle_scope from the view class
login_view.cls.throttle_scope = 'login'


@api_view(['POST'])
@permission_classes([AllowAny])
def jwt_refresh_view(request):
    """Return a new access token from a refresh token."""
    s = TokenRefreshSerializer(data=request.data)
    try:
        s.is_valid(raise_exception=True)
    except TokenError as e:
        raise InvalidToken(e.args[0])
    data = dict(s.validated_data)
    payload = {'ok': True, 'jwt_access': data.pop('access')}
    if 'refresh' in data:
        payload['jwt_refresh'] = data['refresh']
    return Response(payload)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def jwt_logout_view(request):
    """Blacklist the given refresh token, or every outstanding token of the caller."""
    s = LogoutSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    refresh = s.validated_data.get('refresh')
    count = 0
    if refresh:
        try:
            token = RefreshToken(refresh)
        except TokenError as e:
            raise InvalidArgument(str(e))
        if str(token.get('user_id')) != str(request.user.id):
            raise Forbidden('this refresh token belongs to another account')
        token.blacklist()
        count = 1
    else:
        for token in OutstandingToken.objects.filter(user=request.user):
            _, created = BlacklistedToken.objects.get_or_create(token=token)
            count += int(created)
    log_action(user=request.user, action='logout', object_type='user', object_id=request.user.id,
               detail={'blacklisted': count})
    return Response({'ok': True, 'blacklisted': count})
