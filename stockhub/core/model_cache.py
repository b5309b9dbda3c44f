"""
Caching for frequently read, rarely written data: branch lists and weather.

Branch list keys carry a version number. Saving or deleting any Branch,
District or Region bumps the version so every scoped list is stale at once,
on every cache backend.
"""
from django.core.cache import cache
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging

from stockhub.core.roles import REGIONAL_MANAGER, DISTRICT_MANAGER, is_admin
from stockhub.locations.models import Region, District, Branch

logger = logging.getLogger(__name__)

# Cache key prefixes
BRANCH_LIST_KEY_PREFIX = 'branch_list:'
BRANCH_LIST_VERSION_KEY = 'branch_list:version'
WEATHER_KEY_PREFIX = 'weather:'

# Cache TTL (Time To Live) in seconds
BRANCH_LIST_CACHE_TTL = 600  # 10 minutes


# ==================== BRANCH LIST CACHING ====================

def branch_scope_key(user) -> str:
    """Cache key fragment describing which branches `user` can list"""
    if is_admin(user):
        return 'all'
    if user.role == REGIONAL_MANAGER:
        return f"region-{user.region_id}"
    if user.role == DISTRICT_MANAGER:
        return f"district-{user.district_id}"
    return f"branch-{user.branch_id}"


def _branch_list_version() -> int:
    return cache.get_or_set(BRANCH_LIST_VERSION_KEY, 1, None)


def get_branch_list_cache_key(scope_key: str = 'all') -> str:
    """Get cache key for a scoped branch list"""
    return f"{BRANCH_LIST_KEY_PREFIX}v{_branch_list_version()}:{scope_key}"


def invalidate_branch_lists():
    """Make every cached branch list stale"""
    try:
        cache.incr(BRANCH_LIST_VERSION_KEY)
    except ValueError:
        # Version key evicted or never set
        cache.set(BRANCH_LIST_VERSION_KEY, 2, None)
    logger.debug("Invalidated branch list caches")


# ==================== WEATHER CACHING ====================

def get_weather_cache_key(city: str) -> str:
    return f"{WEATHER_KEY_PREFIX}{city.strip().lower()}"


# ==================== SIGNAL HANDLERS ====================

@receiver(post_save, sender=Region)
@receiver(post_save, sender=District)
@receiver(post_save, sender=Branch)
def invalidate_branch_lists_on_save(sender, instance, **kwargs):
    invalidate_branch_lists()


@receiver(post_delete, sender=Region)
@receiver(post_delete, sender=District)
@receiver(post_delete, sender=Branch)
def invalidate_branch_lists_on_delete(sender, instance, **kwargs):
    invalidate_branch_lists()
