import logging

from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import User

logger = logging.getLogger(__name__)


@receiver(post_save, sender=User)
def open_credit_account(sender, instance, created, **kwargs):
    """
    Open the credit account for a new user and apply the signup grant.

    The grant goes through the ledger service so the very first balance is
    already backed by a ledger row.
    """
    if not created or kwargs.get('raw'):
        return

    from billing.models import CreditAccount, CreditTransaction
    from billing.services.credit_ledger import add_credits

    CreditAccount.objects.get_or_create(user=instance)

    bonus = int(getattr(settings, 'SIGNUP_BONUS_CREDITS', 0) or 0)
    if bonus > 0:
        add_credits(
            instance.pk,
            bonus,
            CreditTransaction.OperationType.SIGNUP_BONUS,
            "Signup bonus",
        )
    logger.info(f"Credit account opened for user {instance.username} with {max(bonus, 0)} credits")
