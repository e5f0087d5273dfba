import logging
from datetime import timedelta
from functools import partial

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from contracts.exceptions import (
    ContractError,
    ContractNotActive,
    Forbidden,
    InvalidTransition,
    NotFound,
    PaymentProcessorError,
    ValidationError,
)
from contracts.models import Contract
from contracts.notifications import dispatch, get_notifier
from contracts.participants import ParticipantRole, require_participant, require_role, resolve_role
from contracts.services import ContractService
from contracts.transitions import MILESTONE_TRANSITIONS, can_advance
from .fees import calculate_breakdown
from .models import OPEN_TRANSACTION_STATES, PayoutAccount, Transaction, WebhookEvent
from .providers import get_payment_provider
from .transitions import advance_transaction

logger = logging.getLogger(__name__)

RETRYABLE_TRANSACTION_STATES = ('failed', 'cancelled', 'refunded')


def transactions_visible_to(user):
    queryset = Transaction.objects.select_related('contract', 'milestone', 'client', 'freelancer')
    if user.is_staff:
        return queryset
    return queryset.filter(Q(client=user) | Q(freelancer=user))


class PaymentOrchestrator:
    """
    Decides when to call the payment processor and reconciles what it says
    back into local ``Transaction`` rows.

    Locks are always taken contract first, then transaction. A processor
    error propagates before any local write, so a failed call leaves the
    database exactly as it was.
    """

    def __init__(self, provider=None, notifier=None, contract_service=None):
        self.provider = provider or get_payment_provider()
        self.notifier = notifier or get_notifier()
        self.contract_service = contract_service or ContractService(notifier=self.notifier)

    def _notify(self, user_id, event_type, tx, **extra):
        payload = {'contract_id': tx.contract_id, 'milestone_id': tx.milestone_id, 'transaction_id': tx.pk, **extra}
        transaction.on_commit(partial(dispatch, self.notifier, user_id, event_type, payload))

    @staticmethod
    def _lock_contract(contract_id):
        contract = Contract.objects.select_for_update().filter(pk=contract_id).first()
        if contract is None:
            raise NotFound("Contract not found.")
        return contract

    def _lock_transaction(self, **lookup):
        """Lock the owning contract, then the transaction itself."""
        contract_id = Transaction.objects.filter(**lookup).values_list('contract_id', flat=True).first()
        if contract_id is None:
            raise NotFound("Transaction not found.")
        contract = self._lock_contract(contract_id)
        return contract, Transaction.objects.select_for_update().get(**lookup)

    @staticmethod
    def get_transaction_for(user, transaction_id):
        tx = transactions_visible_to(user).filter(pk=transaction_id).first()
        if tx is None:
            raise NotFound("Transaction not found.")
        return tx

    # -- funding ------------------------------------------------------------

    def create_escrow_intent(self, contract_id, milestone_id, user):
        """
        Start funding escrow for an approved milestone.

        Calling this again while a transaction for the milestone is still
        pending, processing or held returns that transaction untouched, so
        the client can never be charged twice for one milestone.
        """
        with transaction.atomic():
            contract = self._lock_contract(contract_id)
            require_role(contract, user, ParticipantRole.CLIENT, "fund milestones")
            milestone = contract.get_milestone(milestone_id)

            existing = (
                Transaction.objects.select_for_update()
                .filter(milestone=milestone, status__in=OPEN_TRANSACTION_STATES)
                .first()
            )
            if existing is not None:
                logger.info("Escrow intent for milestone %s already exists (transaction %s)", milestone.pk, existing.pk)
                return existing

            if contract.status != 'active':
                raise ContractNotActive("Escrow can only be funded on an active contract.")
            if milestone.status != 'approved':
                raise InvalidTransition(
                    f"Milestone must be approved before funding escrow (current status: {milestone.status})."
                )

            breakdown = calculate_breakdown(milestone.amount)
            minimum = settings.PAYMENT_MIN_AMOUNT
            if breakdown['amount'] < minimum:
                raise ValidationError(f"Amount must be at least {minimum} {contract.currency}.")

            attempt = Transaction.objects.filter(milestone=milestone, status__in=RETRYABLE_TRANSACTION_STATES).count()
            idempotency_key = f"contract-{contract.pk}-milestone-{milestone.pk}-intent-{attempt}"
            intent = self.provider.create_intent(
                breakdown['amount'],
                contract.currency,
                {
                    'contract_id': contract.pk,
                    'milestone_id': milestone.pk,
                    'client_id': contract.client_id,
                    'freelancer_id': contract.freelancer_id,
                },
                idempotency_key,
            )

            tx = Transaction(
                contract=contract,
                milestone=milestone,
                client_id=contract.client_id,
                freelancer_id=contract.freelancer_id,
                currency=contract.currency,
                provider=self.provider.name,
                provider_intent_id=intent['intent_id'],
                client_secret=intent.get('client_secret') or '',
                idempotency_key=idempotency_key,
                **breakdown,
            )
            tx.status = advance_transaction(tx, 'submit')
            tx.save()
            logger.info(
                "Escrow intent %s created for milestone %s: amount=%s commission=%s freelancer=%s",
                tx.provider_intent_id, milestone.pk, tx.amount, tx.platform_commission, tx.freelancer_amount,
            )
        return tx

    def _hold(self, tx):
        tx.status = advance_transaction(tx, 'confirm')
        tx.escrow_release_date = timezone.now() + timedelta(days=settings.ESCROW_HOLD_DAYS)
        tx.failure_reason = ''
        tx.save(update_fields=['status', 'escrow_release_date', 'failure_reason', 'updated_at'])
        logger.info("Transaction %s held in escrow until %s", tx.pk, tx.escrow_release_date)
        self._notify(tx.freelancer_id, 'escrow_funded', tx)

    def confirm_escrow(self, intent_id, user=None, processor_status=None):
        """
        Move a ``processing`` transaction into escrow once the processor
        reports the intent as succeeded.
        """
        with transaction.atomic():
            contract, tx = self._lock_transaction(provider_intent_id=intent_id)
            if user is not None:
                require_participant(contract, user, "confirm its escrow payments")
            if tx.status == 'held_in_escrow':
                return tx

            processor_status = processor_status or self.provider.confirm(intent_id)
            if processor_status != 'succeeded':
                raise InvalidTransition(f"Payment has not succeeded yet (processor status: {processor_status}).")
            self._hold(tx)
        return tx

    def mark_failed(self, intent_id, reason='', cancelled=False):
        """Record that the processor will never capture this intent."""
        with transaction.atomic():
            _, tx = self._lock_transaction(provider_intent_id=intent_id)
            if tx.status in ('failed', 'cancelled'):
                return tx
            tx.status = advance_transaction(tx, 'cancel' if cancelled else 'fail')
            tx.failure_reason = reason or ''
            tx.save(update_fields=['status', 'failure_reason', 'updated_at'])
            logger.warning("Transaction %s %s: %s", tx.pk, tx.status, reason or '-')
        return tx

    def record_attempt_failure(self, intent_id, reason=''):
        """
        Note a declined payment attempt. The intent stays open at the
        processor and the customer may retry it, so the transaction keeps
        its status and only the reason is stored.
        """
        with transaction.atomic():
            _, tx = self._lock_transaction(provider_intent_id=intent_id)
            if tx.status not in ('pending', 'processing'):
                return tx
            tx.failure_reason = reason or ''
            tx.save(update_fields=['failure_reason', 'updated_at'])
            logger.warning("Payment attempt on transaction %s declined: %s", tx.pk, reason or '-')
        return tx

    # -- release & refund ---------------------------------------------------

    def release(self, transaction_id, user):
        """
        Pay the freelancer their share and mark the milestone paid.

        The processor call carries the key ``release-<id>`` and happens under
        the contract and transaction locks, so a duplicated request either
        finds the transaction already released or replays the same transfer.
        """
        with transaction.atomic():
            contract, tx = self._lock_transaction(pk=transaction_id)
            require_role(contract, user, ParticipantRole.CLIENT, "release escrow funds")
            next_status = advance_transaction(tx, 'release')
            if contract.status != 'active':
                raise ContractNotActive("Funds can only be released on an active contract.")
            milestone = tx.milestone
            if not can_advance(MILESTONE_TRANSITIONS, milestone.status, 'mark_paid'):
                raise InvalidTransition(
                    f"Milestone is not payable (current status: {milestone.status})."
                )

            account = (
                PayoutAccount.objects.filter(user_id=tx.freelancer_id, provider=tx.provider, payouts_enabled=True)
                .order_by('-is_default', '-created_at')
                .first()
            )
            if account is None:
                raise ValidationError("Freelancer has no payout account enabled for transfers.")

            transfer_id = self.provider.release(
                account.account_id,
                tx.freelancer_amount,
                tx.currency,
                {'contract_id': tx.contract_id, 'milestone_id': tx.milestone_id, 'transaction_id': tx.pk},
                f"release-{tx.pk}",
            )

            tx.status = next_status
            tx.released_at = timezone.now()
            tx.provider_transfer_id = transfer_id
            tx.save(update_fields=['status', 'released_at', 'provider_transfer_id', 'updated_at'])
            logger.info("Transaction %s released %s to %s (%s)", tx.pk, tx.freelancer_amount, account.account_id, transfer_id)

            self.contract_service.mark_milestone_paid(contract.pk, tx.milestone_id)
        return tx

    def refund(self, transaction_id, user, reason=''):
        """
        Return held funds to the client. The milestone keeps its status and
        may be funded again.
        """
        with transaction.atomic():
            contract, tx = self._lock_transaction(pk=transaction_id)
            role = resolve_role(contract, user)
            if not user.is_staff and role is not ParticipantRole.FREELANCER:
                if role is None:
                    raise Forbidden("You are not a participant on this contract and cannot refund its escrow.")
                if contract.status != 'cancelled':
                    raise Forbidden("Clients can only request refunds on cancelled contracts.")
            next_status = advance_transaction(tx, 'refund')

            refund_id = self.provider.refund(tx.provider_intent_id, reason, f"refund-{tx.pk}")

            tx.status = next_status
            tx.refunded_at = timezone.now()
            tx.provider_refund_id = refund_id
            tx.failure_reason = reason or ''
            tx.save(update_fields=['status', 'refunded_at', 'provider_refund_id', 'failure_reason', 'updated_at'])
            logger.info("Transaction %s refunded (%s): %s", tx.pk, refund_id, reason or '-')
            self._notify(tx.client_id, 'escrow_refunded', tx, reason=reason)
        return tx

    # -- reconciliation -----------------------------------------------------

    def reconcile(self, transaction_id):
        """
        Ask the processor what happened to a ``processing`` transaction and
        record the answer. Never moves money.
        """
        with transaction.atomic():
            _, tx = self._lock_transaction(pk=transaction_id)
            if tx.status != 'processing':
                return tx
            processor_status = self.provider.confirm(tx.provider_intent_id)
            if processor_status == 'succeeded':
                self._hold(tx)
            elif processor_status in ('canceled', 'failed'):
                tx.status = advance_transaction(tx, 'cancel' if processor_status == 'canceled' else 'fail')
                tx.failure_reason = f"Processor reported the payment as {processor_status}."
                tx.save(update_fields=['status', 'failure_reason', 'updated_at'])
                logger.warning("Transaction %s reconciled to %s", tx.pk, tx.status)
            else:
                logger.info("Transaction %s still %s at the processor", tx.pk, processor_status)
        return tx

    def reconcile_stale(self, older_than=None):
        """Reconcile every ``processing`` transaction older than the confirmation window."""
        if older_than is None:
            older_than = timedelta(minutes=settings.PAYMENT_CONFIRMATION_WINDOW_MINUTES)
        cutoff = timezone.now() - older_than
        stale = Transaction.objects.filter(status='processing', created_at__lt=cutoff).values_list('pk', flat=True)

        summary = {'held_in_escrow': 0, 'failed': 0, 'cancelled': 0, 'processing': 0, 'errors': 0}
        for transaction_id in list(stale):
            try:
                tx = self.reconcile(transaction_id)
            except PaymentProcessorError as e:
                logger.warning("Reconciliation of transaction %s deferred: %s", transaction_id, e.detail)
                summary['errors'] += 1
                continue
            summary[tx.status] = summary.get(tx.status, 0) + 1
        logger.info("Escrow reconciliation finished: %s", summary)
        return summary

    # -- webhooks -----------------------------------------------------------

    def handle_webhook(self, payload, signature):
        """
        Verify a processor webhook and apply it once.

        A processor error while applying rolls back the dedup record so the
        processor's retry is processed again. An event the transaction's
        state no longer accepts is recorded and ignored.
        """
        event = self.provider.construct_webhook_event(payload, signature)
        event_id, event_type = event['id'], event['type']
        if WebhookEvent.objects.filter(event_id=event_id).exists():
            logger.info("Webhook %s (%s) already processed", event_id, event_type)
            return 'duplicate'

        intent = (event.get('data') or {}).get('object') or {}
        intent_id = intent.get('id')
        with transaction.atomic():
            try:
                with transaction.atomic():
                    WebhookEvent.objects.create(provider=self.provider.name, event_id=event_id, event_type=event_type)
            except IntegrityError:
                logger.info("Webhook %s (%s) already being processed", event_id, event_type)
                return 'duplicate'

            if not intent_id or not Transaction.objects.filter(provider_intent_id=intent_id).exists():
                logger.info("Webhook %s (%s) does not match a transaction", event_id, event_type)
                return 'ignored'

            try:
                with transaction.atomic():
                    applied = self._apply_intent_event(event_type, intent_id, intent)
            except PaymentProcessorError:
                raise
            except ContractError as e:
                logger.warning("Webhook %s (%s) not applied to intent %s: %s", event_id, event_type, intent_id, e.detail)
                return 'ignored'
            if not applied:
                logger.info("Webhook %s: unhandled event type %s", event_id, event_type)
                return 'ignored'
        logger.info("Webhook %s (%s) processed for intent %s", event_id, event_type, intent_id)
        return 'processed'

    def _apply_intent_event(self, event_type, intent_id, intent):
        if event_type == 'payment_intent.succeeded':
            self.confirm_escrow(intent_id, processor_status='succeeded')
        elif event_type == 'payment_intent.payment_failed':
            error = intent.get('last_payment_error') or {}
            self.record_attempt_failure(intent_id, error.get('message') or 'Payment failed.')
        elif event_type == 'payment_intent.canceled':
            self.mark_failed(intent_id, intent.get('cancellation_reason') or 'Payment cancelled.', cancelled=True)
        else:
            return False
        return True
