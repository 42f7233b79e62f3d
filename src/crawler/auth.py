"""Login realms for paywalled sites.

Credentials come from a :class:`CredentialProvider`; the default one reads
``<REALM>_EMAIL`` and ``<REALM>_PASSWORD`` from the environment. Recipes are
data: a login URL plus the form fields to fill, in order.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    email: str
    password: str


class CredentialProvider(Protocol):
    def get(self, realm: str) -> Optional[Credentials]: ...


class EnvCredentialProvider:
    def get(self, realm: str) -> Optional[Credentials]:
        realm = realm.upper()
        email = os.getenv(f"{realm}_EMAIL")
        password = os.getenv(f"{realm}_PASSWORD")
        if email and password:
            return Credentials(email=email, password=password)
        return None


@dataclass(frozen=True)
class LoginStep:
    """Fill ``selector`` with the credential named by ``value``, or click it."""

    selector: str
    value: Optional[str] = None  # "email" | "password" | None for a click
    pause: float = 0.0


@dataclass(frozen=True)
class LoginRecipe:
    login_url: str
    steps: tuple[LoginStep, ...] = field(default_factory=tuple)


LOGIN_RECIPES: dict[str, LoginRecipe] = {
    "NYT": LoginRecipe(
        login_url="https://myaccount.nytimes.com/auth/login",
        steps=(
            LoginStep('input[name="email"]', "email"),
            LoginStep('button[data-testid="submit-email"]', pause=1.0),
            LoginStep('input[name="password"]', "password"),
            LoginStep('button[data-testid="login-button"]', pause=2.0),
        ),
    ),
    # Condé Nast shares one login across vulture/nymag/newyorker
    "VULTURE": LoginRecipe(
        login_url="https://www.vulture.com/login",
        steps=(
            LoginStep('input[type="email"]', "email"),
            LoginStep('input[type="password"]', "password"),
            LoginStep('button[type="submit"]', pause=2.0),
        ),
    ),
    "WAPO": LoginRecipe(
        login_url="https://www.washingtonpost.com/subscribe/signin/",
        steps=(
            LoginStep('input[name="email"]', "email"),
            LoginStep('input[name="password"]', "password"),
            LoginStep('button[type="submit"]', pause=2.0),
        ),
    ),
}
