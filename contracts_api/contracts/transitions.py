"""
Transition tables for the contract aggregate and its owned records.

Each table maps ``(current_state, action)`` to the next state. Anything not in
a table is an invalid transition; ``advance`` is the single place that says so.
"""
from .exceptions import InvalidTransition


CONTRACT_TRANSITIONS = {
    ('draft', 'activate'): 'active',
    ('active', 'pause'): 'paused',
    ('paused', 'resume'): 'active',
    ('active', 'complete'): 'completed',
    ('draft', 'cancel'): 'cancelled',
    ('active', 'cancel'): 'cancelled',
    ('draft', 'dispute'): 'disputed',
    ('active', 'dispute'): 'disputed',
    ('paused', 'dispute'): 'disputed',
}

MILESTONE_TRANSITIONS = {
    ('pending', 'start'): 'in_progress',
    ('pending', 'submit'): 'submitted',
    ('in_progress', 'submit'): 'submitted',
    ('rejected', 'submit'): 'submitted',
    ('submitted', 'approve'): 'approved',
    ('submitted', 'reject'): 'rejected',
    ('approved', 'mark_paid'): 'paid',
}

AMENDMENT_TRANSITIONS = {
    ('pending', 'accepted'): 'accepted',
    ('pending', 'rejected'): 'rejected',
}

# Contract states in which no milestone may move and no amendment may be settled.
CONTRACT_SINK_STATES = frozenset({'completed', 'cancelled', 'disputed'})

MILESTONE_ACTION_LABELS = {
    'start': 'startable',
    'submit': 'submittable',
    'approve': 'approvable',
    'reject': 'rejectable',
    'mark_paid': 'payable',
}


def can_advance(table, state, action):
    return (state, action) in table


def advance(table, state, action, message=None):
    """Return the state reached by ``action`` from ``state`` or raise InvalidTransition."""
    try:
        return table[(state, action)]
    except KeyError:
        raise InvalidTransition(message or f"Cannot {action.replace('_', ' ')} from status '{state}'.")


def advance_contract(contract, action):
    return advance(
        CONTRACT_TRANSITIONS,
        contract.status,
        action,
        f"Contract cannot {action} while it is {contract.status}.",
    )


def advance_milestone(milestone, action):
    label = MILESTONE_ACTION_LABELS.get(action, action)
    return advance(
        MILESTONE_TRANSITIONS,
        milestone.status,
        action,
        f"Milestone is not {label} (current status: {milestone.status}).",
    )


def advance_amendment(amendment, outcome):
    return advance(
        AMENDMENT_TRANSITIONS,
        amendment.status,
        outcome,
        f"Amendment cannot be {outcome} from status '{amendment.status}'.",
    )
