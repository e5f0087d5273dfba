import pytest

from contracts.exceptions import ContractNotActive, Forbidden, InvalidTransition, NotFound, ValidationError
from contracts.models import Contract, Deliverable, Milestone

pytestmark = pytest.mark.django_db


@pytest.fixture
def contract(make_active_contract):
    return make_active_contract(amounts=('500.00', '300.00'))


@pytest.fixture
def milestone(contract):
    return contract.milestones.first()


def test_freelancer_submits_with_deliverables(service, contract, milestone, freelancer_user):
    service.submit_milestone(
        contract.pk,
        milestone.pk,
        freelancer_user,
        deliverables=[{'title': 'Homepage', 'deliverable_type': 'link', 'content': 'https://example.com'}],
        notes='First cut',
    )

    milestone.refresh_from_db()
    assert milestone.status == 'submitted'
    assert milestone.submitted_at is not None
    assert milestone.freelancer_notes == 'First cut'
    deliverable = milestone.deliverables.get()
    assert deliverable.status == 'submitted'
    assert deliverable.deliverable_type == 'link'


def test_submission_without_deliverables_or_notes_is_allowed(service, contract, milestone, freelancer_user):
    service.submit_milestone(contract.pk, milestone.pk, freelancer_user)
    milestone.refresh_from_db()
    assert milestone.status == 'submitted'
    assert not milestone.deliverables.exists()


def test_client_cannot_submit(service, contract, milestone, client_user):
    with pytest.raises(Forbidden):
        service.submit_milestone(contract.pk, milestone.pk, client_user)


def test_start_then_submit(service, contract, milestone, freelancer_user):
    service.start_milestone(contract.pk, milestone.pk, freelancer_user)
    assert Milestone.objects.get(pk=milestone.pk).status == 'in_progress'
    service.submit_milestone(contract.pk, milestone.pk, freelancer_user)
    assert Milestone.objects.get(pk=milestone.pk).status == 'submitted'


def test_approving_a_pending_milestone_is_invalid(service, contract, milestone, client_user):
    with pytest.raises(InvalidTransition) as exc:
        service.approve_milestone(contract.pk, milestone.pk, client_user)
    assert "approvable" in str(exc.value.detail)
    assert Milestone.objects.get(pk=milestone.pk).status == 'pending'


def test_approve_marks_deliverables_approved(service, contract, milestone, client_user, freelancer_user, notifier,
                                             django_capture_on_commit_callbacks):
    service.submit_milestone(contract.pk, milestone.pk, freelancer_user, deliverables=[{'title': 'Logo'}])
    with django_capture_on_commit_callbacks(execute=True):
        service.approve_milestone(contract.pk, milestone.pk, client_user, 'Great work')

    milestone.refresh_from_db()
    assert milestone.status == 'approved'
    assert milestone.client_feedback == 'Great work'
    assert list(milestone.deliverables.values_list('status', flat=True)) == ['approved']
    assert notifier.events_for(freelancer_user.pk) == ['milestone_approved']


def test_reject_then_resubmit(service, contract, milestone, client_user, freelancer_user):
    service.submit_milestone(contract.pk, milestone.pk, freelancer_user, deliverables=[{'title': 'Draft'}])
    service.reject_milestone(contract.pk, milestone.pk, client_user, 'Needs a darker palette')

    milestone.refresh_from_db()
    assert milestone.status == 'rejected'
    rejected = milestone.deliverables.get()
    assert rejected.status == 'rejected'
    assert rejected.client_feedback == 'Needs a darker palette'

    service.submit_milestone(contract.pk, milestone.pk, freelancer_user, deliverables=[{'title': 'Draft v2'}])
    milestone.refresh_from_db()
    assert milestone.status == 'submitted'
    assert Deliverable.objects.filter(milestone=milestone).count() == 2


def test_reject_requires_feedback(service, contract, milestone, client_user, freelancer_user):
    service.submit_milestone(contract.pk, milestone.pk, freelancer_user)
    with pytest.raises(ValidationError):
        service.reject_milestone(contract.pk, milestone.pk, client_user, '')
    assert Milestone.objects.get(pk=milestone.pk).status == 'submitted'


def test_double_submit_is_rejected(service, contract, milestone, freelancer_user):
    service.submit_milestone(contract.pk, milestone.pk, freelancer_user)
    with pytest.raises(InvalidTransition):
        service.submit_milestone(contract.pk, milestone.pk, freelancer_user)


def test_paused_contract_blocks_milestones_until_resumed(service, contract, milestone, client_user, freelancer_user):
    service.pause(contract.pk, client_user, 'Holiday')
    with pytest.raises(ContractNotActive):
        service.submit_milestone(contract.pk, milestone.pk, freelancer_user)

    service.resume(contract.pk, freelancer_user)
    service.submit_milestone(contract.pk, milestone.pk, freelancer_user)
    assert Milestone.objects.get(pk=milestone.pk).status == 'submitted'


def test_disputed_contract_freezes_milestones(service, contract, milestone, client_user, freelancer_user):
    service.submit_milestone(contract.pk, milestone.pk, freelancer_user)
    service.dispute(contract.pk, client_user, 'Work not delivered')

    with pytest.raises(InvalidTransition):
        service.approve_milestone(contract.pk, milestone.pk, client_user)
    with pytest.raises(InvalidTransition):
        service.mark_milestone_paid(contract.pk, milestone.pk)
    assert Milestone.objects.get(pk=milestone.pk).status == 'submitted'


def test_draft_contract_milestones_cannot_move(make_contract, service, freelancer_user):
    contract = make_contract()
    with pytest.raises(ContractNotActive):
        service.submit_milestone(contract.pk, contract.milestones.first().pk, freelancer_user)


def test_mark_paid_requires_approval(service, contract, milestone, freelancer_user):
    service.submit_milestone(contract.pk, milestone.pk, freelancer_user)
    with pytest.raises(InvalidTransition):
        service.mark_milestone_paid(contract.pk, milestone.pk)


def test_contract_completes_when_last_milestone_is_paid(service, contract, approve_milestone):
    first, second = contract.milestones.all()
    approve_milestone(contract, first)
    approve_milestone(contract, second)

    service.mark_milestone_paid(contract.pk, first.pk)
    assert Contract.objects.get(pk=contract.pk).status == 'active'

    service.mark_milestone_paid(contract.pk, second.pk)
    assert Contract.objects.get(pk=contract.pk).status == 'completed'
    assert Milestone.objects.get(pk=second.pk).paid_at is not None


def test_milestone_of_another_contract_is_not_found(service, contract, make_active_contract, freelancer_user):
    other = make_active_contract()
    with pytest.raises(NotFound):
        service.submit_milestone(contract.pk, other.milestones.first().pk, freelancer_user)
