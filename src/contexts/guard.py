from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Literal, Optional

SIGN_IN_ROUTE = "/auth"
CUSTOMER_HOME = "/dashboard"
ROLE_HOMES = {"admin": "/admin", "vendor": "/vendor", "customer": CUSTOMER_HOME}


@dataclass(frozen=True)
class GuardDecision:
    action: Literal["loading", "redirect", "render"]
    target: Optional[str] = None


LOADING = GuardDecision("loading")
RENDER = GuardDecision("render")


def role_home(role: Optional[str]) -> str:
    return ROLE_HOMES.get(role, CUSTOMER_HOME)


def guard(auth, allowed_roles: Iterable[str] = ("any",)) -> GuardDecision:
    """
    Decide what a protected route shows for the current auth state.

    Only ``active_view_role`` counts: a user holding several roles must switch to
    an allowed one before the route renders.
    """
    if auth.loading:
        return LOADING
    if auth.user is None:
        return GuardDecision("redirect", SIGN_IN_ROUTE)
    allowed = tuple(allowed_roles)
    if "any" not in allowed and auth.active_view_role not in allowed:
        return GuardDecision("redirect", role_home(auth.active_view_role))
    return RENDER


def guard_auth_route(auth) -> GuardDecision:
    """The sign-in screen is for signed-out users only."""
    if auth.loading:
        return LOADING
    if auth.user is not None:
        return GuardDecision("redirect", "/")
    return RENDER
