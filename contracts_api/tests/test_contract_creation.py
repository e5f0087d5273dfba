from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.db.models import F

from contracts.exceptions import ConcurrentModification, ValidationError
from contracts.models import DEFAULT_TERMS, Contract

pytestmark = pytest.mark.django_db


def test_create_contract_starts_in_draft(make_contract):
    contract = make_contract(amounts=('500.00', '300.00'))

    assert contract.status == 'draft'
    assert contract.version == 1
    assert contract.currency == 'USD'
    assert contract.terms == DEFAULT_TERMS
    milestones = list(contract.milestones.all())
    assert [m.position for m in milestones] == [0, 1]
    assert [m.amount for m in milestones] == [Decimal('500.00'), Decimal('300.00')]
    assert all(m.status == 'pending' for m in milestones)


def test_milestone_amounts_must_add_up_to_total(make_contract):
    with pytest.raises(ValidationError) as exc:
        make_contract(amounts=('500.00', '300.00'), total_amount=Decimal('900.00'))
    assert "must equal contract total" in str(exc.value.detail)
    assert not Contract.objects.exists()


def test_end_date_must_follow_start_date(make_contract):
    with pytest.raises(ValidationError):
        make_contract(start_date=date.today(), end_date=date.today() - timedelta(days=1))


def test_one_contract_per_proposal(make_contract):
    make_contract(proposal_ref='proposal-x')
    with pytest.raises(ValidationError) as exc:
        make_contract(proposal_ref='proposal-x')
    assert "already exists" in str(exc.value.detail)


def test_client_and_freelancer_must_differ(make_contract, client_user):
    with pytest.raises(ValidationError):
        make_contract(freelancer=client_user)


def test_contract_must_go_to_a_freelancer_account(make_contract, outsider):
    with pytest.raises(ValidationError) as exc:
        make_contract(freelancer=outsider)
    assert "freelancer accounts" in str(exc.value.detail)
    assert not Contract.objects.exists()


@pytest.mark.parametrize('amounts', [('0.00', '500.00'), ('0.25', '500.00')])
def test_milestones_below_the_minimum_payment_are_rejected(make_contract, amounts):
    with pytest.raises(ValidationError) as exc:
        make_contract(amounts=amounts)
    assert "at least 0.50" in str(exc.value.detail)
    assert not Contract.objects.exists()


def test_custom_terms_merge_over_defaults(make_contract):
    contract = make_contract(terms={'confidentiality': 'NDA signed separately.'})
    assert contract.terms['confidentiality'] == 'NDA signed separately.'
    assert contract.terms['payment_terms'] == DEFAULT_TERMS['payment_terms']


def test_unknown_terms_are_rejected(make_contract):
    with pytest.raises(ValidationError):
        make_contract(terms={'warranty': 'forever'})


def test_title_length_is_checked(make_contract):
    with pytest.raises(ValidationError):
        make_contract(title='Site')


def test_save_with_version_detects_a_concurrent_writer(make_contract):
    contract = make_contract()
    stale = Contract.objects.get(pk=contract.pk)
    Contract.objects.filter(pk=contract.pk).update(version=F('version') + 1)

    stale.status = 'cancelled'
    with pytest.raises(ConcurrentModification):
        stale.save_with_version(['status'])
    assert Contract.objects.get(pk=contract.pk).status == 'draft'


def test_derived_figures(make_active_contract):
    contract = make_active_contract(amounts=('500.00', '300.00'))
    first = contract.milestones.first()
    first.status = 'paid'
    first.save()

    contract = Contract.objects.get(pk=contract.pk)
    assert contract.total_paid == Decimal('500.00')
    assert contract.remaining_amount == Decimal('300.00')
    assert contract.progress == 50
    assert contract.next_milestone.title == 'Milestone 2'
    assert contract.overdue_milestones == []
