"""
Cache invalidation for AdminSetting edits.
"""

import logging

from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from toolkit.models import AdminSetting
from toolkit.settings_provider import invalidate_cached_setting

logger = logging.getLogger(__name__)


@receiver(post_save, sender=AdminSetting)
@receiver(post_delete, sender=AdminSetting)
def invalidate_admin_setting(sender, instance, **kwargs):
    """Drop the cached value so the next lookup reads the new row."""
    invalidate_cached_setting(instance.key)
    logger.info("Admin setting changed", extra={"setting_key": instance.key})
