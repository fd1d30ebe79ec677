"""Verify identity tokens presented over a live channel."""

import logging
from dataclasses import dataclass
from typing import Optional

from django.contrib.auth import get_user_model
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import AccessToken

from mechanics.models import Mechanic
from .exceptions import InvalidIdentityError

User = get_user_model()
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerifiedIdentity:
    """Who a token speaks for."""
    subject_id: int
    role: str
    mechanic_id: Optional[int] = None


class JWTIdentityVerifier:
    """Verify simplejwt access tokens and resolve the subject's mechanic profile."""

    def verify(self, token: str) -> VerifiedIdentity:
        if not token:
            raise InvalidIdentityError("Identity token is required")

        try:
            access = AccessToken(token)
        except TokenError as e:
            logger.debug("Token verification failed: %s", e)
            raise InvalidIdentityError("Token verification failed") from e

        user_id = access.get(api_settings.USER_ID_CLAIM)
        user = User.objects.filter(pk=user_id, is_active=True).first() if user_id is not None else None
        if user is None:
            raise InvalidIdentityError("Token subject does not exist")

        mechanic_id = Mechanic.objects.filter(user=user).values_list("id", flat=True).first()
        return VerifiedIdentity(subject_id=user.pk, role=user.role, mechanic_id=mechanic_id)
