"""
Branch scoping for querysets.

Every branch-scoped endpoint filters through here so the hierarchy rules
live in one place:

- admin: every branch, optionally narrowed by ?branch= or its branch_context
- regional/district manager: the branch_context only, which must sit inside
  their region/district; without one a BranchSelectionRequired is raised
- everyone else: branch_context while it is still in scope, else the home branch
"""
import logging

from stockhub.locations.models import Branch

from .exceptions import BranchSelectionRequired, BranchOutOfScope
from .roles import (
    REGIONAL_MANAGER, DISTRICT_MANAGER,
    is_admin, is_multi_branch, visible_roles, effective_role,
)

logger = logging.getLogger('stockhub.core')


def selectable_branches(user):
    """Branches `user` may pick as branch context"""
    if is_admin(user):
        return Branch.objects.all()
    if user.role == REGIONAL_MANAGER:
        if not user.region_id:
            return Branch.objects.none()
        return Branch.objects.filter(region_id=user.region_id)
    if user.role == DISTRICT_MANAGER:
        if not user.district_id:
            return Branch.objects.none()
        return Branch.objects.filter(district_id=user.district_id)
    if not user.branch_id:
        return Branch.objects.none()
    return Branch.objects.filter(id=user.branch_id)


def branch_choices(user):
    return list(selectable_branches(user).order_by('name').values('id', 'name', 'location'))


def branch_in_scope(user, branch_id) -> bool:
    if branch_id is None:
        return False
    return selectable_branches(user).filter(id=branch_id).exists()


def effective_branch_id(user):
    """Branch the user is currently working against, or None"""
    if is_admin(user) or is_multi_branch(user):
        return user.branch_context_id
    if user.branch_context_id and branch_in_scope(user, user.branch_context_id):
        return user.branch_context_id
    return user.branch_id


def require_branch(user):
    """
    Branch id for branch-scoped data.

    Raises BranchSelectionRequired for a multi-branch manager without a
    valid branch context. Returns None for accounts with no branch at all.
    """
    branch_id = effective_branch_id(user)
    if is_multi_branch(user):
        if branch_id is None or not branch_in_scope(user, branch_id):
            raise BranchSelectionRequired(branches=branch_choices(user))
    return branch_id


def requested_branch(request):
    """Optional ?branch= narrowing used by admins"""
    raw = request.query_params.get('branch') if request is not None else None
    if not raw:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def scope_queryset(user, queryset, branch_field='branch', request=None):
    """Restrict `queryset` to the rows `user` may see"""
    lookup = f'{branch_field}_id'
    if is_admin(user):
        branch_id = requested_branch(request) or user.branch_context_id
        if branch_id:
            return queryset.filter(**{lookup: branch_id})
        return queryset

    branch_id = require_branch(user)
    if branch_id is None:
        return queryset.none()
    return queryset.filter(**{lookup: branch_id})


def scope_profiles(user, queryset, request=None):
    """Profiles at or below the viewer's role, in the viewer's branch"""
    queryset = queryset.filter(role__in=visible_roles(effective_role(user)))
    return scope_queryset(user, queryset, branch_field='branch', request=request)


def branch_for_write(user, branch_id=None):
    """
    Branch a new record should be attached to.

    An explicit branch must be in scope; otherwise the working branch is used.
    """
    if branch_id is not None:
        if not branch_in_scope(user, branch_id):
            logger.warning(f"User {user.username} tried to write to branch {branch_id} outside their scope")
            raise BranchOutOfScope()
        return branch_id
    return require_branch(user)
