from __future__ import annotations

from typing import Any, Mapping, Union

from .schemas import Role, User

SELLER_EMAIL_PREFIX = "shop."


def derive_role(email: str | None) -> Role:
    """Sellers sign in with a ``shop.`` address; everyone else is a customer."""
    if email and email.startswith(SELLER_EMAIL_PREFIX):
        return Role.SELLER
    return Role.CUSTOMER


def _email_of(subject: Union[User, str, None]) -> str | None:
    if isinstance(subject, User):
        return subject.email
    return subject


def is_seller(subject: Union[User, str, None]) -> bool:
    return derive_role(_email_of(subject)) is Role.SELLER


def is_customer(subject: Union[User, str, None]) -> bool:
    return derive_role(_email_of(subject)) is Role.CUSTOMER


def resolve_user(payload: Mapping[str, Any]) -> User:
    """Build a User from identity data, ignoring any role the payload claims."""
    data = dict(payload)
    data["role"] = derive_role(data.get("email"))
    return User.model_validate(data)
