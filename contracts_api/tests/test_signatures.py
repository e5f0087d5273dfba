import pytest

from contracts.exceptions import AlreadySigned, ConcurrentModification, Forbidden, InvalidTransition
from contracts.models import Contract, Signature

pytestmark = pytest.mark.django_db


def test_first_signature_keeps_contract_in_draft(make_contract, service, client_user, freelancer_user, notifier,
                                                django_capture_on_commit_callbacks):
    contract = make_contract()
    with django_capture_on_commit_callbacks(execute=True):
        contract = service.sign(contract.pk, client_user, ip_address='10.0.0.1', user_agent='pytest')

    assert contract.status == 'draft'
    assert contract.version == 2
    signature = Signature.objects.get(contract=contract)
    assert signature.signed_by == client_user
    assert signature.ip_address == '10.0.0.1'
    assert len(signature.signature_hash) == 64
    assert notifier.events_for(freelancer_user.pk) == ['contract_signed']


def test_second_signature_activates_contract(make_contract, service, client_user, freelancer_user, notifier,
                                             django_capture_on_commit_callbacks):
    contract = make_contract()
    with django_capture_on_commit_callbacks(execute=True):
        service.sign(contract.pk, freelancer_user)
        contract = service.sign(contract.pk, client_user)

    assert contract.status == 'active'
    assert contract.is_fully_signed()
    assert Contract.objects.get(pk=contract.pk).status == 'active'
    assert 'contract_activated' in notifier.events_for(client_user.pk)
    assert 'contract_activated' in notifier.events_for(freelancer_user.pk)


def test_signing_twice_is_rejected_and_ledger_unchanged(make_contract, service, freelancer_user):
    contract = make_contract()
    service.sign(contract.pk, freelancer_user)

    with pytest.raises(AlreadySigned):
        service.sign(contract.pk, freelancer_user)

    assert Signature.objects.filter(contract=contract).count() == 1
    assert Contract.objects.get(pk=contract.pk).status == 'draft'


def test_outsider_cannot_sign(make_contract, service, outsider):
    contract = make_contract()
    with pytest.raises(Forbidden):
        service.sign(contract.pk, outsider)
    assert not Signature.objects.exists()


def test_only_draft_contracts_can_be_signed(make_contract, service, client_user, freelancer_user):
    contract = make_contract()
    service.cancel(contract.pk, freelancer_user, "Changed plans")

    with pytest.raises(InvalidTransition):
        service.sign(contract.pk, client_user)


def test_stale_version_is_rejected(make_contract, service, client_user):
    contract = make_contract()
    with pytest.raises(ConcurrentModification):
        service.sign(contract.pk, client_user, expected_version=contract.version + 1)
    assert not Signature.objects.exists()


def test_activation_requires_both_parties(make_contract, service, client_user):
    contract = make_contract()
    contract = service.sign(contract.pk, client_user)
    assert not contract.is_fully_signed()
    assert contract.status == 'draft'
