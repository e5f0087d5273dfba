import enum

from .exceptions import Forbidden


class ParticipantRole(str, enum.Enum):
    CLIENT = 'client'
    FREELANCER = 'freelancer'


def resolve_role(contract, user):
    """Return the role ``user`` plays on ``contract``, or None for outsiders."""
    user_id = getattr(user, 'pk', user)
    if user_id is None:
        return None
    if user_id == contract.client_id:
        return ParticipantRole.CLIENT
    if user_id == contract.freelancer_id:
        return ParticipantRole.FREELANCER
    return None


def require_participant(contract, user, action="access this contract"):
    role = resolve_role(contract, user)
    if role is None:
        raise Forbidden(f"You are not a participant on this contract and cannot {action}.")
    return role


def require_role(contract, user, expected, action):
    role = require_participant(contract, user, action)
    if role is not expected:
        raise Forbidden(f"You are not the {expected.value} on this contract; only the {expected.value} can {action}.")
    return role


def counterparty_id(contract, role):
    return contract.freelancer_id if role is ParticipantRole.CLIENT else contract.client_id
