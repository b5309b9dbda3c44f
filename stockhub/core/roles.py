"""
Role hierarchy.

admin > regional_manager > district_manager > manager > assistant_manager > staff

A role sees its own level and everything below it. Managing (creating or
editing) another account requires at least assistant_manager and the target
role must sit at or below the actor's level.
"""

ADMIN = 'admin'
REGIONAL_MANAGER = 'regional_manager'
DISTRICT_MANAGER = 'district_manager'
MANAGER = 'manager'
ASSISTANT_MANAGER = 'assistant_manager'
STAFF = 'staff'

ROLE_CHOICES = [
    (REGIONAL_MANAGER, 'Regional Manager'),
    (DISTRICT_MANAGER, 'District Manager'),
    (MANAGER, 'Manager'),
    (ASSISTANT_MANAGER, 'Assistant Manager'),
    (STAFF, 'Staff'),
    (ADMIN, 'Admin'),
]

ROLE_LEVELS = {
    STAFF: 1,
    ASSISTANT_MANAGER: 2,
    MANAGER: 3,
    DISTRICT_MANAGER: 4,
    REGIONAL_MANAGER: 5,
    ADMIN: 6,
}

# Roles that operate across several branches through branch_context
MULTI_BRANCH_ROLES = (REGIONAL_MANAGER, DISTRICT_MANAGER)

MANAGER_ROLES = (REGIONAL_MANAGER, DISTRICT_MANAGER, MANAGER, ASSISTANT_MANAGER)


def role_level(role) -> int:
    return ROLE_LEVELS.get(role, 0)


def visible_roles(role) -> list:
    """Roles a viewer with `role` may list, highest first"""
    level = role_level(role)
    if not level:
        return []
    return sorted(
        (r for r, lvl in ROLE_LEVELS.items() if lvl <= level),
        key=role_level,
        reverse=True,
    )


def can_view_role(viewer_role, target_role) -> bool:
    return role_level(target_role) > 0 and role_level(target_role) <= role_level(viewer_role)


def can_manage(viewer_role, target_role) -> bool:
    """Whether `viewer_role` may create or edit an account holding `target_role`"""
    if role_level(viewer_role) < ROLE_LEVELS[ASSISTANT_MANAGER]:
        return False
    return can_view_role(viewer_role, target_role)


def is_admin(user) -> bool:
    return bool(user and (user.role == ADMIN or user.is_superuser))


def is_multi_branch(user) -> bool:
    return bool(user and user.role in MULTI_BRANCH_ROLES)


def is_manager(user) -> bool:
    return bool(user and (user.role in MANAGER_ROLES or is_admin(user)))


def effective_role(user):
    """Superusers act as admins whatever their stored role"""
    if is_admin(user):
        return ADMIN
    return user.role
