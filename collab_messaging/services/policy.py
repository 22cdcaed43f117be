from typing import Any, Mapping, Optional


MESSAGING_ROLES = frozenset({"student", "alumni"})


def can_message(a: Optional[Mapping[str, Any]], b: Optional[Mapping[str, Any]]) -> bool:
    """Students may only message alumni and alumni only students.

    Evaluated against the freshly loaded identities on every send; roles can
    change between calls so the result is never cached.
    """
    if not a or not b:
        return False
    role_a, role_b = a.get("role"), b.get("role")
    return role_a in MESSAGING_ROLES and role_b in MESSAGING_ROLES and role_a != role_b


def opposite_role(role: Optional[str]) -> Optional[str]:
    if role == "student":
        return "alumni"
    if role == "alumni":
        return "student"
    return None
