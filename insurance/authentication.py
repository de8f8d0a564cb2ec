"""
Bearer token authentication for the API.

This module defines a subclass of djangorestframework-simplejwt's
``JWTAuthentication``.  Keeping it separate from the login views avoids
circular imports when Django REST framework imports authentication
classes during initialisation, and gives the project a stable import
path for its configuration.
"""
from __future__ import annotations

from rest_framework_simplejwt import authentication


class JWTAuthentication(authentication.JWTAuthentication):
    """Authenticate ``Authorization: Bearer <access token>`` headers.

    Tokens are signed with ``SIMPLE_JWT['SIGNING_KEY']`` which comes
    from the ``JWT_SIGNING_KEY`` setting.  Inactive accounts are
    rejected by the parent class.
    """

    www_authenticate_realm = 'socialsecurity'
