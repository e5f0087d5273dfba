import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)

User = get_user_model()


EVENT_SUBJECTS = {
    'contract_signed': "A contract you are part of was signed",
    'contract_activated': "Your contract is now active",
    'milestone_submitted': "A milestone was submitted for review",
    'milestone_approved': "Your milestone was approved",
    'milestone_rejected': "Your milestone needs changes",
    'milestone_paid': "Milestone payment released",
    'amendment_proposed': "A contract amendment was proposed",
    'amendment_responded': "Your amendment received a response",
    'contract_cancelled': "A contract was cancelled",
    'contract_disputed': "A dispute was raised on your contract",
    'contract_paused': "A contract was paused",
    'contract_resumed': "A contract was resumed",
    'contract_completed': "Contract completed",
    'escrow_funded': "Escrow funded for a milestone",
    'escrow_refunded': "Escrow refunded",
}


class BaseNotifier:
    """Fire-and-forget delivery of contract events to a user."""

    def notify(self, user_id, event_type, payload):
        raise NotImplementedError


class EmailNotifier(BaseNotifier):
    def notify(self, user_id, event_type, payload):
        user = User.objects.filter(pk=user_id).first()
        if not user:
            logger.warning("Notification target %s does not exist (event=%s)", user_id, event_type)
            return

        subject = EVENT_SUBJECTS.get(event_type, "Contract update")
        contract_id = payload.get('contract_id')
        message = f"""
    Hello {user.get_full_name() or user.email},

    {subject}.

    View contract: {settings.FRONTEND_DOMAIN}/dashboard/contracts/{contract_id}

    The {settings.SITE_NAME} Team
    """

        send_mail(
            subject=subject,
            message=message.strip(),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[user.email],
            fail_silently=False,
        )


def get_notifier():
    return import_string(settings.CONTRACT_NOTIFIER)()


def dispatch(notifier, user_id, event_type, payload):
    """Deliver a notification; failures are logged and never propagate."""
    try:
        notifier.notify(user_id, event_type, payload)
    except Exception:
        logger.exception("Notification %s to user %s failed", event_type, user_id)
