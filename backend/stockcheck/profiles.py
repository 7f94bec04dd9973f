# Overview: Pure helpers mapping stored profile strings to UserProfile and checking grant eligibility.

from __future__ import annotations

from .models.enums import AssignmentType, UserProfile

_ALIASES = {
    "ADMIN": UserProfile.ADMINISTRADOR,
    "ADMINISTRADOR": UserProfile.ADMINISTRADOR,
    "GERENTE_TIENDA": UserProfile.GERENTE_TIENDA,
    "LIDER": UserProfile.LIDER,
    "INVENTARIO": UserProfile.INVENTARIO,
}

# Which grant levels each profile may hold. Only leaders own whole divisions.
_GRANTABLE_LEVELS = {
    UserProfile.ADMINISTRADOR: frozenset(),
    UserProfile.GERENTE_TIENDA: frozenset(
        {AssignmentType.CATEGORIA, AssignmentType.GRUPO, AssignmentType.SUBGRUPO}
    ),
    UserProfile.LIDER: frozenset(AssignmentType),
    UserProfile.INVENTARIO: frozenset(
        {AssignmentType.CATEGORIA, AssignmentType.GRUPO, AssignmentType.SUBGRUPO}
    ),
}


def parse_profile(value: str | None) -> UserProfile:
    """Map a stored profile string to UserProfile; unknown values read as INVENTARIO."""
    if not value:
        return UserProfile.INVENTARIO
    return _ALIASES.get(value.strip().upper(), UserProfile.INVENTARIO)


def profile_to_db(profile: UserProfile) -> str:
    return profile.value


def can_hold_grant(profile: UserProfile, assignment_type: AssignmentType) -> bool:
    return assignment_type in _GRANTABLE_LEVELS[profile]
