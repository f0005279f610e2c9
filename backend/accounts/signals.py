from django.db.models.signals import post_save
from django.dispatch import receiver
from .models import User
import logging

logger = logging.getLogger(__name__)


@receiver(post_save, sender=User)
def user_account_created(sender, instance, created, **kwargs):
    """
    Log new accounts; updates are ignored
    """
    if created:
        logger.info(
            f"New user created: {instance.username}",
            extra={"user_id": instance.pk, "event": "user_created"},
        )
