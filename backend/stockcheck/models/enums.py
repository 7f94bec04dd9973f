"""
Closed vocabularies for tickets, codes, counts and grants.

Values are persisted as their string form, so members subclass ``str`` and
compare equal to the stored column value.
"""
from __future__ import annotations

from enum import Enum


class RequestStatus(str, Enum):
    PENDIENTE = "PENDIENTE"
    EN_REVISION = "EN_REVISION"
    LISTO = "LISTO"
    AJUSTADO = "AJUSTADO"
    DEVUELTO = "DEVUELTO"
    CANCELADO = "CANCELADO"


READY_STATUSES = frozenset({RequestStatus.LISTO, RequestStatus.AJUSTADO})

# Ticket-level states that only an explicit operation can set.
TICKET_OVERRIDE_STATUSES = frozenset({RequestStatus.DEVUELTO, RequestStatus.CANCELADO})


class RequestPriority(str, Enum):
    BAJA = "BAJA"
    NORMAL = "NORMAL"
    ALTA = "ALTA"
    URGENTE = "URGENTE"


class HistoryAction(str, Enum):
    CREATED = "CREATED"
    ASSIGNED = "ASSIGNED"
    AUTO_ASSIGNED = "AUTO_ASSIGNED"
    STATUS_CHANGED = "STATUS_CHANGED"
    COMMENT = "COMMENT"
    COMPLETED = "COMPLETED"


class CountStatus(str, Enum):
    EN_REVISION = "EN_REVISION"
    DEVUELTO = "DEVUELTO"
    FORENSE = "FORENSE"
    AJUSTADO = "AJUSTADO"


class CountAction(str, Enum):
    CREATED = "CREATED"
    COUNTED = "COUNTED"
    STATUS_CHANGED = "STATUS_CHANGED"
    COMMENT_ADDED = "COMMENT_ADDED"
    ADJUSTED = "ADJUSTED"


class MovementType(str, Enum):
    AJUSTE_POSITIVO = "AJUSTE_POSITIVO"
    AJUSTE_NEGATIVO = "AJUSTE_NEGATIVO"
    STOCK_CUADRADO = "STOCK_CUADRADO"


class CodeFilterStatus(str, Enum):
    """Whether a count's physical quantity has been captured."""
    PENDIENTE = "PENDIENTE"
    CONTADO = "CONTADO"


class AssignmentAction(str, Enum):
    GRANTED = "GRANTED"
    DEACTIVATED = "DEACTIVATED"
    REVOKED = "REVOKED"


class AssignmentType(str, Enum):
    """
    Taxonomy level a grant is scoped to.

    ``rank`` grows with specificity; the resolver walks levels from the
    highest rank down.
    """
    DIVISION = "DIVISION"
    CATEGORIA = "CATEGORIA"
    GRUPO = "GRUPO"
    SUBGRUPO = "SUBGRUPO"

    @property
    def rank(self) -> int:
        return _ASSIGNMENT_RANKS[self]

    @property
    def scope_fields(self) -> tuple[str, ...]:
        """Code fields that must be present for a grant at this level (ancestors first)."""
        return _SCOPE_CODE_FIELDS[: self.rank]

    @property
    def code_field(self) -> str:
        """Code field compared against a product's taxonomy at this level."""
        return _SCOPE_CODE_FIELDS[self.rank - 1]

    @classmethod
    def by_specificity(cls) -> list["AssignmentType"]:
        return sorted(cls, key=lambda member: member.rank, reverse=True)


_ASSIGNMENT_RANKS = {
    AssignmentType.DIVISION: 1,
    AssignmentType.CATEGORIA: 2,
    AssignmentType.GRUPO: 3,
    AssignmentType.SUBGRUPO: 4,
}

_SCOPE_CODE_FIELDS = ("division_code", "category_code", "group_code", "subgroup_code")

# Stored in RequestCode.assignment_type when a code was assigned by hand.
MANUAL_ASSIGNMENT = "MANUAL"


class UserProfile(str, Enum):
    ADMINISTRADOR = "ADMINISTRADOR"
    GERENTE_TIENDA = "GERENTE_TIENDA"
    LIDER = "LIDER"
    INVENTARIO = "INVENTARIO"
