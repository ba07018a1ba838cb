from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from werkzeug.security import check_password_hash, generate_password_hash

from ..classes.repository import ClassRepository
from ..common.pagination import Page, normalize_page
from ..common.validators import (
    optional_email,
    optional_text,
    require_min_length,
    require_mobile,
    require_non_empty,
    require_positive_id,
)
from ..core.exceptions import AuthenticationError, AuthorizationError, NotFoundError, ValidationError
from .model import ProfilePatch, User
from .repository import UserRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionUser:
    """What we store into the Flask session after login."""

    user_id: int
    name: str
    mobile: str


class AuthService:
    """Use case: register and authenticate accounts."""

    def __init__(self, users: UserRepository):
        self._users = users

    def register(self, *, name: str, mobile: str, password: str, email: Optional[str] = None) -> User:
        name = require_non_empty(name, "Name")
        mobile = require_mobile(mobile)
        email = optional_email(email)
        password = require_min_length(password if isinstance(password, str) else "", "Password", 6)

        if self._users.get_by_mobile(mobile):
            raise ValidationError("Mobile number is already registered")

        user_id = self._users.create_user(
            name=name,
            mobile=mobile,
            email=email,
            password_hash=generate_password_hash(password),
        )
        logger.info("Registered user %s", user_id)
        user = self._users.get_by_id(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def authenticate(self, mobile: str, password: str) -> SessionUser:
        user = self._users.get_by_mobile(str(mobile or "").strip())
        if not user:
            raise AuthenticationError("Invalid mobile number or password")

        try:
            ok = check_password_hash(user.password_hash, password if isinstance(password, str) else "")
        except ValueError:
            # Malformed stored hash.
            ok = False

        if not ok:
            raise AuthenticationError("Invalid mobile number or password")

        return SessionUser(user_id=user.user_id, name=user.name, mobile=user.mobile)


class UserService:
    def __init__(self, users: UserRepository, classes: ClassRepository):
        self._users = users
        self._classes = classes

    def get_profile(self, user_id: int) -> User:
        user = self._users.get_by_id(int(user_id))
        if not user:
            raise NotFoundError("User not found")
        return user

    def update_profile(self, user_id: int, patch: ProfilePatch) -> User:
        user = self.get_profile(user_id)

        name = require_non_empty(patch.name, "Name") if patch.name is not None else user.name
        mobile = require_mobile(patch.mobile) if patch.mobile is not None else user.mobile
        email = optional_email(patch.email) if patch.email is not None else user.email

        if mobile != user.mobile:
            holder = self._users.get_by_mobile(mobile)
            if holder and holder.user_id != user.user_id:
                raise ValidationError("Mobile number is already registered")

        if not self._users.update_profile(user.user_id, name=name, mobile=mobile, email=email):
            raise NotFoundError("User not found")
        logger.info("Updated profile of user %s", user.user_id)
        return self.get_profile(user.user_id)

    def available_students(
        self,
        class_id,
        user_id: int,
        *,
        search: Optional[str] = None,
        page=None,
        limit=None,
    ) -> Page[User]:
        """Users the class owner can still invite: everyone but the owner and current entry holders."""

        if class_id in (None, ""):
            raise ValidationError("Class ID is required")
        klass = self._classes.get_by_id(require_positive_id(class_id, "Class ID"))
        if not klass:
            raise NotFoundError("Class not found")
        if not klass.is_owner(user_id):
            raise AuthorizationError("Only the class creator can add students")

        page, limit = normalize_page(page, limit)
        return self._users.search_available(
            class_id=klass.class_id,
            exclude_id=int(user_id),
            search=optional_text(search),
            page=page,
            limit=limit,
        )
