"""Role/region/branch visibility rules shared by every CRM entity.

``resolve_scope`` turns a caller into an :class:`AccessScope`; repositories
translate the scope's dimension into a column filter. The rules are an ordered
table and the first matching rule wins:

1. counselor / counsellor with a user id -> rows they counsel
2. admission_officer with a user id -> rows they handle
3. partner (or a partner sub-user variant) with a user id -> partner / sub_partner rows
4. branch_manager -> their branch, nothing when no branch is assigned
5. regional_manager -> their region, nothing when no region is assigned
6. any other non super_admin role with a region -> that region
7. everything else -> unrestricted
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum


class Role(StrEnum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    REGIONAL_MANAGER = "regional_manager"
    BRANCH_MANAGER = "branch_manager"
    COUNSELOR = "counselor"
    COUNSELLOR = "counsellor"
    ADMISSION_OFFICER = "admission_officer"
    ADMIN_STAFF = "admin_staff"
    PARTNER = "partner"
    PARTNER_SUB_USER = "partner_sub_user"
    PROCESSING = "processing"


SCOPE_ALL = "all"
SCOPE_NONE = "none"
SCOPE_MATCH = "match"

DIMENSIONS = ("counselor", "admission_officer", "partner", "sub_partner", "branch", "region")


@dataclass(frozen=True, slots=True)
class AccessScope:
    kind: str
    dimension: str | None = None
    value: str | None = None

    @classmethod
    def all(cls) -> AccessScope:
        return cls(kind=SCOPE_ALL)

    @classmethod
    def none(cls) -> AccessScope:
        return cls(kind=SCOPE_NONE)

    @classmethod
    def match(cls, dimension: str, value: str) -> AccessScope:
        if dimension not in DIMENSIONS:
            raise ValueError(f"unknown scope dimension: {dimension}")
        return cls(kind=SCOPE_MATCH, dimension=dimension, value=value)

    @property
    def is_empty(self) -> bool:
        return self.kind == SCOPE_NONE

    @property
    def is_unrestricted(self) -> bool:
        return self.kind == SCOPE_ALL


@dataclass(frozen=True, slots=True)
class ScopeSubject:
    user_id: str | None
    role: str
    region_id: str | None
    branch_id: str | None


_SUB_USER_MARKERS = {"partnersubuser", "partnersub", "subpartner"}


def normalize_role(role: str | None) -> str:
    return re.sub(r"[^a-z0-9]", "", (role or "").lower())


def is_partner_sub_user(role: str | None) -> bool:
    return normalize_role(role) in _SUB_USER_MARKERS


def _counselor(subject: ScopeSubject) -> AccessScope | None:
    if subject.role in {Role.COUNSELOR, Role.COUNSELLOR} and subject.user_id:
        return AccessScope.match("counselor", subject.user_id)
    return None


def _admission_officer(subject: ScopeSubject) -> AccessScope | None:
    if subject.role == Role.ADMISSION_OFFICER and subject.user_id:
        return AccessScope.match("admission_officer", subject.user_id)
    return None


def _partner(subject: ScopeSubject) -> AccessScope | None:
    if not subject.user_id:
        return None
    if is_partner_sub_user(subject.role):
        return AccessScope.match("sub_partner", subject.user_id)
    if subject.role == Role.PARTNER:
        return AccessScope.match("partner", subject.user_id)
    return None


def _branch_manager(subject: ScopeSubject) -> AccessScope | None:
    if subject.role != Role.BRANCH_MANAGER:
        return None
    if not subject.branch_id:
        return AccessScope.none()
    return AccessScope.match("branch", subject.branch_id)


def _regional_manager(subject: ScopeSubject) -> AccessScope | None:
    if subject.role != Role.REGIONAL_MANAGER:
        return None
    if not subject.region_id:
        return AccessScope.none()
    return AccessScope.match("region", subject.region_id)


def _implicit_region(subject: ScopeSubject) -> AccessScope | None:
    if subject.region_id and subject.role != Role.SUPER_ADMIN:
        return AccessScope.match("region", subject.region_id)
    return None


ScopeRule = Callable[[ScopeSubject], AccessScope | None]

SCOPE_RULES: tuple[ScopeRule, ...] = (
    _counselor,
    _admission_officer,
    _partner,
    _branch_manager,
    _regional_manager,
    _implicit_region,
)


def resolve_scope(
    user_id: str | None,
    role: str | None,
    region_id: str | None = None,
    branch_id: str | None = None,
) -> AccessScope:
    subject = ScopeSubject(
        user_id=user_id or None,
        role=(role or "").strip().lower(),
        region_id=region_id or None,
        branch_id=branch_id or None,
    )
    for rule in SCOPE_RULES:
        scope = rule(subject)
        if scope is not None:
            return scope
    return AccessScope.all()
