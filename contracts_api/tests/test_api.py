import json
from datetime import date, timedelta

import pytest
from django.urls import reverse

from contracts.exceptions import PaymentProcessorError
from contracts.models import Contract, Milestone
from payments.models import Transaction

pytestmark = pytest.mark.django_db


def create_payload(freelancer, **overrides):
    start = date.today()
    payload = {
        'freelancer_id': freelancer.pk,
        'project_ref': 'project-42',
        'proposal_ref': 'proposal-42',
        'title': 'Mobile app redesign',
        'description': 'Refresh the onboarding and settings screens.',
        'total_amount': '800.00',
        'start_date': start.isoformat(),
        'end_date': (start + timedelta(days=60)).isoformat(),
        'milestones': [
            {'title': 'Wireframes', 'description': 'Low fidelity flows', 'amount': '300.00',
             'due_date': (start + timedelta(days=14)).isoformat()},
            {'title': 'Final designs', 'description': 'High fidelity screens', 'amount': '500.00',
             'due_date': (start + timedelta(days=45)).isoformat()},
        ],
    }
    payload.update(overrides)
    return payload


def test_endpoints_require_authentication(api_client):
    response = api_client.get(reverse('contract-list'))
    assert response.status_code == 401


def test_client_creates_contract(as_user, client_user, freelancer_user):
    response = as_user(client_user).post(reverse('contract-list'), create_payload(freelancer_user), format='json')

    assert response.status_code == 201
    body = response.json()['contract']
    assert body['status'] == 'draft'
    assert body['version'] == 1
    assert [m['title'] for m in body['milestones']] == ['Wireframes', 'Final designs']


def test_freelancer_accounts_cannot_create_contracts(as_user, freelancer_user, client_user):
    response = as_user(freelancer_user).post(reverse('contract-list'), create_payload(client_user), format='json')
    assert response.status_code == 403


def test_mismatched_milestone_total_is_a_400(as_user, client_user, freelancer_user):
    payload = create_payload(freelancer_user, total_amount='900.00')
    response = as_user(client_user).post(reverse('contract-list'), payload, format='json')

    assert response.status_code == 400
    assert "must equal contract total" in response.json()['detail']


def test_contract_offered_to_a_client_account_is_a_400(as_user, client_user, outsider):
    response = as_user(client_user).post(reverse('contract-list'), create_payload(outsider), format='json')

    assert response.status_code == 400
    assert 'freelancer_id' in response.json()
    assert not Contract.objects.exists()


def test_zero_amount_milestone_is_a_400(as_user, client_user, freelancer_user):
    payload = create_payload(freelancer_user, total_amount='500.00')
    payload['milestones'][0]['amount'] = '0.00'
    response = as_user(client_user).post(reverse('contract-list'), payload, format='json')

    assert response.status_code == 400
    assert 'milestones' in response.json()
    assert not Contract.objects.exists()


def test_list_filters_by_role_and_status(as_user, make_contract, make_active_contract, client_user):
    make_contract()
    make_active_contract()
    api = as_user(client_user)

    assert api.get(reverse('contract-list')).json()['count'] == 2
    assert api.get(reverse('contract-list'), {'status': 'active'}).json()['count'] == 1
    assert api.get(reverse('contract-list'), {'role': 'freelancer'}).json()['count'] == 0


def test_outsider_cannot_view_contract(as_user, make_contract, outsider):
    contract = make_contract()
    response = as_user(outsider).get(reverse('contract-detail', args=[contract.pk]))
    assert response.status_code == 403


def test_sign_and_activate_over_http(api_client, make_contract, client_user, freelancer_user):
    contract = make_contract()
    url = reverse('contract-sign', args=[contract.pk])

    api_client.force_authenticate(client_user)
    first = api_client.post(url, {'version': 1}, format='json', HTTP_USER_AGENT='pytest-agent')
    assert first.status_code == 200
    assert first.json()['signatures'][0]['user_agent'] == 'pytest-agent'

    api_client.force_authenticate(freelancer_user)
    second = api_client.post(url, {'version': first.json()['version']}, format='json')
    assert second.status_code == 200
    assert second.json()['status'] == 'active'
    assert second.json()['is_fully_signed'] is True

    again = api_client.post(url, {}, format='json')
    assert again.status_code == 409


def test_stale_version_is_a_conflict(as_user, make_active_contract, client_user):
    contract = make_active_contract()
    response = as_user(client_user).post(reverse('contract-pause', args=[contract.pk]), {'version': 1}, format='json')

    assert response.status_code == 409
    assert Contract.objects.get(pk=contract.pk).status == 'active'


def test_approving_pending_milestone_is_a_conflict(as_user, make_active_contract, client_user):
    contract = make_active_contract()
    milestone = contract.milestones.first()
    response = as_user(client_user).post(
        reverse('milestone-approve', args=[contract.pk, milestone.pk]), {'feedback': 'ok'}, format='json',
    )

    assert response.status_code == 409
    assert 'pending' in response.json()['detail']


def test_submit_and_approve_over_http(api_client, make_active_contract, client_user, freelancer_user):
    contract = make_active_contract()
    milestone = contract.milestones.first()

    api_client.force_authenticate(freelancer_user)
    response = api_client.post(
        reverse('milestone-submit', args=[contract.pk, milestone.pk]),
        {'notes': 'Ready', 'deliverables': [{'title': 'Figma file', 'deliverable_type': 'link', 'content': 'https://figma.example'}]},
        format='json',
    )
    assert response.status_code == 200

    api_client.force_authenticate(client_user)
    response = api_client.post(reverse('milestone-approve', args=[contract.pk, milestone.pk]), {}, format='json')
    assert response.status_code == 200
    assert Milestone.objects.get(pk=milestone.pk).status == 'approved'


def test_amendment_flow_over_http(api_client, make_active_contract, client_user, freelancer_user):
    contract = make_active_contract()
    new_end = (contract.end_date + timedelta(days=10)).isoformat()

    api_client.force_authenticate(freelancer_user)
    proposed = api_client.post(
        reverse('amendment-list', args=[contract.pk]),
        {'amendment_type': 'timeline_change', 'description': 'Need more time', 'reason': 'Extra screens',
         'changes': {'end_date': new_end}},
        format='json',
    )
    assert proposed.status_code == 201
    amendment_id = proposed.json()['amendments'][0]['id']

    own = api_client.post(
        reverse('amendment-respond', args=[contract.pk, amendment_id]), {'status': 'accepted'}, format='json',
    )
    assert own.status_code == 403

    api_client.force_authenticate(client_user)
    accepted = api_client.post(
        reverse('amendment-respond', args=[contract.pk, amendment_id]), {'status': 'accepted'}, format='json',
    )
    assert accepted.status_code == 200
    assert accepted.json()['end_date'] == new_end


def test_dispute_over_http(as_user, make_active_contract, freelancer_user):
    contract = make_active_contract()
    response = as_user(freelancer_user).post(
        reverse('contract-dispute', args=[contract.pk]),
        {'reason': 'Client stopped responding', 'evidence': ['chat-log.txt']},
        format='json',
    )
    assert response.status_code == 200
    assert response.json()['status'] == 'disputed'


def test_escrow_endpoints_use_the_configured_provider(monkeypatch, api_client, provider, make_active_contract,
                                                      approve_milestone, client_user, freelancer_user,
                                                      payout_account):
    monkeypatch.setattr('payments.services.get_payment_provider', lambda *args, **kwargs: provider)
    contract = make_active_contract(amounts=('500.00',))
    milestone = contract.milestones.get()
    approve_milestone(contract, milestone)
    api_client.force_authenticate(client_user)

    url = reverse('escrow-intent', args=[contract.pk, milestone.pk])
    created = api_client.post(url, format='json')
    repeated = api_client.post(url, format='json')
    assert created.status_code == 201
    assert repeated.json()['id'] == created.json()['id']
    assert created.json()['platform_commission'] == '50.00'
    assert created.json()['client_secret']

    intent_id = created.json()['provider_intent_id']
    provider.set_status(intent_id, 'succeeded')
    confirmed = api_client.post(reverse('escrow-confirm'), {'intent_id': intent_id}, format='json')
    assert confirmed.json()['status'] == 'held_in_escrow'

    api_client.force_authenticate(freelancer_user)
    listed = api_client.get(reverse('transaction-list')).json()
    assert listed['count'] == 1
    assert 'client_secret' not in listed['results'][0]
    forbidden = api_client.post(reverse('escrow-release', args=[created.json()['id']]), format='json')
    assert forbidden.status_code == 403

    api_client.force_authenticate(client_user)
    released = api_client.post(reverse('escrow-release', args=[created.json()['id']]), format='json')
    assert released.status_code == 200
    assert released.json()['status'] == 'released'
    assert Contract.objects.get(pk=contract.pk).status == 'completed'


def test_processor_outage_is_a_503(monkeypatch, as_user, provider, make_active_contract, approve_milestone,
                                    client_user):
    monkeypatch.setattr('payments.services.get_payment_provider', lambda *args, **kwargs: provider)
    provider.fail_next['create_intent'] = PaymentProcessorError.Transient()
    contract = make_active_contract(amounts=('500.00',))
    milestone = contract.milestones.get()
    approve_milestone(contract, milestone)

    response = as_user(client_user).post(reverse('escrow-intent', args=[contract.pk, milestone.pk]), format='json')

    assert response.status_code == 503
    assert not Transaction.objects.exists()


def test_stripe_webhook_endpoint(monkeypatch, api_client, orchestrator, provider, make_active_contract,
                                 approve_milestone, client_user):
    monkeypatch.setattr('payments.services.get_payment_provider', lambda *args, **kwargs: provider)
    contract = make_active_contract(amounts=('500.00',))
    milestone = contract.milestones.get()
    approve_milestone(contract, milestone)
    tx = orchestrator.create_escrow_intent(contract.pk, milestone.pk, client_user)

    payload = json.dumps({
        'id': 'evt_http', 'type': 'payment_intent.succeeded', 'data': {'object': {'id': tx.provider_intent_id}},
    })
    response = api_client.post(
        reverse('stripe-webhook'), payload, content_type='application/json', HTTP_STRIPE_SIGNATURE='valid-signature',
    )

    assert response.status_code == 200
    assert response.json() == {'status': 'processed'}
    assert Transaction.objects.get(pk=tx.pk).status == 'held_in_escrow'

    forged = api_client.post(
        reverse('stripe-webhook'), payload, content_type='application/json', HTTP_STRIPE_SIGNATURE='nope',
    )
    assert forged.status_code == 400


def test_freelancer_registers_payout_account(as_user, freelancer_user):
    api = as_user(freelancer_user)
    response = api.post(
        reverse('payout-account-list'),
        {'account_id': 'acct_123', 'payouts_enabled': True, 'is_default': True},
        format='json',
    )
    assert response.status_code == 201
    assert api.get(reverse('payout-account-list')).json()[0]['account_id'] == 'acct_123'
