import itertools
import json
from datetime import date, timedelta
from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from accounts.models import CustomUser
from contracts.exceptions import ValidationError
from contracts.notifications import BaseNotifier
from contracts.services import ContractService
from payments.models import PayoutAccount
from payments.providers.base import BasePaymentProvider
from payments.services import PaymentOrchestrator


class RecordingNotifier(BaseNotifier):
    def __init__(self):
        self.sent = []

    def notify(self, user_id, event_type, payload):
        self.sent.append((user_id, event_type, payload))

    def events_for(self, user_id):
        return [event for uid, event, _ in self.sent if uid == user_id]


class FailingNotifier(BaseNotifier):
    def notify(self, user_id, event_type, payload):
        raise RuntimeError("mail server down")


class FakeProvider(BasePaymentProvider):
    """
    In-memory processor. Queue an exception in ``fail_next[<method>]`` to
    make the next call to that method raise it. Replayed idempotency keys
    return the first result, like the real processor does.
    """

    name = 'stripe'

    def __init__(self):
        super().__init__()
        self.intents = {}
        self.calls = []
        self.fail_next = {}
        self.transfers = []
        self.refunds = []
        self._seen_keys = {}
        self._ids = itertools.count(1)

    def _replay_or_run(self, method, idempotency_key, run):
        error = self.fail_next.pop(method, None)
        if error is not None:
            raise error
        if idempotency_key not in self._seen_keys:
            self._seen_keys[idempotency_key] = run()
        return self._seen_keys[idempotency_key]

    def create_intent(self, amount, currency, metadata, idempotency_key):
        self.calls.append(('create_intent', amount, idempotency_key))

        def run():
            intent_id = f"pi_{next(self._ids)}"
            self.intents[intent_id] = 'requires_payment_method'
            return {'intent_id': intent_id, 'client_secret': f"{intent_id}_secret"}

        return self._replay_or_run('create_intent', idempotency_key, run)

    def set_status(self, intent_id, status):
        self.intents[intent_id] = status

    def confirm(self, intent_id):
        self.calls.append(('confirm', intent_id))
        error = self.fail_next.pop('confirm', None)
        if error is not None:
            raise error
        return self.intents[intent_id]

    def release(self, account_id, amount, currency, metadata, idempotency_key):
        self.calls.append(('release', account_id, amount, idempotency_key))

        def run():
            self.transfers.append((account_id, amount))
            return f"tr_{next(self._ids)}"

        return self._replay_or_run('release', idempotency_key, run)

    def refund(self, intent_id, reason, idempotency_key):
        self.calls.append(('refund', intent_id, idempotency_key))

        def run():
            self.refunds.append(intent_id)
            return f"re_{next(self._ids)}"

        return self._replay_or_run('refund', idempotency_key, run)

    def construct_webhook_event(self, payload, signature):
        if signature != 'valid-signature':
            raise ValidationError("Invalid webhook signature.")
        return json.loads(payload)


@pytest.fixture
def client_user(db):
    return CustomUser.objects.create_user(
        email='client@example.com', password='pass1234', first_name='Cleo', last_name='Client', user_type='client',
    )


@pytest.fixture
def freelancer_user(db):
    return CustomUser.objects.create_user(
        email='freelancer@example.com', password='pass1234', first_name='Fran', last_name='Lancer',
        user_type='freelancer',
    )


@pytest.fixture
def outsider(db):
    return CustomUser.objects.create_user(
        email='outsider@example.com', password='pass1234', first_name='Otto', last_name='Side', user_type='client',
    )


@pytest.fixture
def staff_user(db):
    return CustomUser.objects.create_user(
        email='staff@example.com', password='pass1234', first_name='Sam', last_name='Staff',
        user_type='client', is_staff=True,
    )


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return FailingNotifier()


@pytest.fixture
def service(notifier):
    return ContractService(notifier=notifier)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def orchestrator(provider, notifier, service):
    return PaymentOrchestrator(provider=provider, notifier=notifier, contract_service=service)


@pytest.fixture
def payout_account(freelancer_user):
    return PayoutAccount.objects.create(
        user=freelancer_user, provider='stripe', account_id='acct_freelancer', payouts_enabled=True, is_default=True,
    )


def milestone_payload(*amounts):
    start = date.today()
    return [
        {
            'title': f"Milestone {index + 1}",
            'description': f"Deliver part {index + 1} of the work",
            'amount': Decimal(amount),
            'due_date': start + timedelta(days=7 * (index + 1)),
        }
        for index, amount in enumerate(amounts)
    ]


@pytest.fixture
def make_contract(service, client_user, freelancer_user):
    refs = itertools.count(1)

    def factory(amounts=('500.00', '300.00'), **overrides):
        amounts = tuple(amounts)
        total = sum((Decimal(a) for a in amounts), Decimal('0.00'))
        ref = next(refs)
        data = {
            'client': client_user,
            'freelancer': freelancer_user,
            'project_ref': f"project-{ref}",
            'proposal_ref': f"proposal-{ref}",
            'title': "Build a marketing site",
            'description': "Design and build a five page marketing site.",
            'total_amount': total,
            'start_date': date.today(),
            'end_date': date.today() + timedelta(days=90),
            'milestones': milestone_payload(*amounts),
        }
        data.update(overrides)
        return service.create_contract(**data)

    return factory


@pytest.fixture
def make_active_contract(make_contract, service, client_user, freelancer_user):
    def factory(**kwargs):
        contract = make_contract(**kwargs)
        service.sign(contract.pk, client_user)
        return service.sign(contract.pk, freelancer_user)

    return factory


@pytest.fixture
def approve_milestone(service, client_user, freelancer_user):
    """Drive a milestone from pending to approved."""
    def approve(contract, milestone):
        service.submit_milestone(contract.pk, milestone.pk, freelancer_user)
        return service.approve_milestone(contract.pk, milestone.pk, client_user, "Looks good")

    return approve


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def as_user(api_client):
    def login(user):
        api_client.force_authenticate(user=user)
        return api_client

    return login
