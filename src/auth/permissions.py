"""Role-based access control.

Roles are ordered; a higher role can do everything a lower one can:
- ADMIN (level 3): full access, may edit or delete any comment
- TEACHER (level 2): moderates comments
- STUDENT (level 1): enrolled learner
- USER (level 0): registered account without enrolment
"""

from enum import Enum


class UserRole(str, Enum):
    USER = "user"
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


ROLE_HIERARCHY: dict[UserRole, int] = {
    UserRole.USER: 0,
    UserRole.STUDENT: 1,
    UserRole.TEACHER: 2,
    UserRole.ADMIN: 3,
}


def get_role_level(role: UserRole | str) -> int:
    """Permission level for a role; unknown roles get the lowest level."""
    if isinstance(role, str):
        try:
            role = UserRole(role)
        except ValueError:
            return 0
    return ROLE_HIERARCHY.get(role, 0)


def has_permission(user_role: UserRole | str, required_role: UserRole | str) -> bool:
    """Check if user has at least the required permission level.

    Examples:
        >>> has_permission(UserRole.ADMIN, UserRole.TEACHER)
        True
        >>> has_permission("student", "teacher")
        False
    """
    return get_role_level(user_role) >= get_role_level(required_role)


def is_admin(role: UserRole | str) -> bool:
    return get_role_level(role) == ROLE_HIERARCHY[UserRole.ADMIN]


def is_moderator_role(role: UserRole | str) -> bool:
    """Teachers and admins moderate comments."""
    return has_permission(role, UserRole.TEACHER)
