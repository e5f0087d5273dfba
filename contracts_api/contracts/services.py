import hashlib
import logging
from contextlib import contextmanager
from datetime import date
from decimal import Decimal, InvalidOperation
from functools import partial

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
from django.utils.dateparse import parse_date

from .exceptions import (
    AlreadyResponded,
    AlreadySigned,
    ConcurrentModification,
    ContractNotActive,
    Forbidden,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from .models import Amendment, Contract, Deliverable, Milestone, Signature, TERMS_FIELDS, default_terms
from .notifications import dispatch, get_notifier
from .participants import ParticipantRole, counterparty_id, require_participant, require_role
from .transitions import CONTRACT_SINK_STATES, advance_amendment, advance_contract, advance_milestone

logger = logging.getLogger(__name__)

CONTRACT_FIELDS = ['status', 'total_amount', 'end_date', 'terms']
AMOUNT_TOLERANCE = Decimal('0.01')
# Milestones in these states carry client decisions or money and are frozen.
LOCKED_MILESTONE_STATES = frozenset({'submitted', 'approved', 'paid'})
MILESTONE_EDITABLE_FIELDS = ('title', 'description', 'amount', 'due_date')
AMENDMENT_TYPES = dict(Amendment.TYPE_CHOICES)
DELIVERABLE_TYPES = dict(Deliverable.TYPE_CHOICES)


def _to_decimal(value, field):
    try:
        amount = Decimal(str(value)).quantize(Decimal('0.01'))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a valid amount.")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a valid amount.")
    return amount


def _to_date(value, field):
    if isinstance(value, date):
        return value
    parsed = parse_date(str(value)) if value else None
    if parsed is None:
        raise ValidationError(f"{field} must be a valid date (YYYY-MM-DD).")
    return parsed


def _require_text(value, field, min_length=1, max_length=None):
    text = (value or '').strip()
    if len(text) < min_length:
        if min_length == 1:
            raise ValidationError(f"{field} is required.")
        raise ValidationError(f"{field} must be at least {min_length} characters.")
    if max_length and len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters.")
    return text


def clean_milestone_entry(entry, partial=False):
    """Normalise one milestone payload. ``partial`` entries may omit fields."""
    if not isinstance(entry, dict):
        raise ValidationError("Each milestone must be an object.")
    cleaned = {}
    if entry.get('id') is not None:
        try:
            cleaned['id'] = int(entry['id'])
        except (TypeError, ValueError):
            raise ValidationError("Milestone id must be an integer.")
    for field in MILESTONE_EDITABLE_FIELDS:
        if field not in entry:
            if not partial:
                raise ValidationError(f"Milestone {field} is required.")
            continue
        value = entry[field]
        if field == 'title':
            cleaned[field] = _require_text(value, "Milestone title", max_length=200)
        elif field == 'description':
            cleaned[field] = _require_text(value, "Milestone description", max_length=1000)
        elif field == 'amount':
            amount = _to_decimal(value, "Milestone amount")
            minimum = settings.PAYMENT_MIN_AMOUNT
            if amount < minimum:
                raise ValidationError(f"Milestone amount must be at least {minimum}.")
            cleaned[field] = amount
        else:
            cleaned[field] = _to_date(value, "Milestone due date")
    return cleaned


def clean_terms(terms):
    if not isinstance(terms, dict) or not terms:
        raise ValidationError("Terms must be a non-empty object.")
    unknown = sorted(set(terms) - set(TERMS_FIELDS))
    if unknown:
        raise ValidationError(f"Unknown contract terms: {', '.join(unknown)}.")
    return {key: str(value or '') for key, value in terms.items()}


class ContractService:
    """
    Every state change on a contract, its milestones, signatures and
    amendments goes through here.

    Each mutating call re-reads the contract under a row lock, checks the
    caller's ``expected_version`` when given, validates everything, applies
    the change and bumps ``Contract.version``. Notifications are queued for
    after commit so a delivery failure can never undo a transition.
    """

    def __init__(self, notifier=None):
        self.notifier = notifier or get_notifier()

    # -- plumbing -----------------------------------------------------------

    def _lock(self, contract_id, expected_version=None):
        contract = Contract.objects.select_for_update().filter(pk=contract_id).first()
        if contract is None:
            raise NotFound("Contract not found.")
        if expected_version is not None and int(expected_version) != contract.version:
            raise ConcurrentModification(
                f"Contract is at version {contract.version}, not {expected_version}. Reload and try again."
            )
        return contract

    @contextmanager
    def mutate(self, contract_id, expected_version=None):
        """Yield ``(contract, events)`` inside one atomic, version-checked write."""
        events = []
        with transaction.atomic():
            contract = self._lock(contract_id, expected_version)
            yield contract, events
            contract.save_with_version(CONTRACT_FIELDS)
            for user_id, event_type, payload in events:
                transaction.on_commit(partial(dispatch, self.notifier, user_id, event_type, payload))

    @staticmethod
    def _event(events, user_id, event_type, contract, **extra):
        events.append((user_id, event_type, {'contract_id': contract.pk, **extra}))

    @staticmethod
    def _require_active(contract, doing):
        if contract.status != 'active':
            raise ContractNotActive(
                f"Contract is {contract.status}; milestones can only be {doing} on an active contract."
            )

    def _complete_if_settled(self, contract, events):
        if contract.status == 'active' and contract.all_milestones_paid():
            contract.status = advance_contract(contract, 'complete')
            logger.info("Contract %s completed: every milestone is paid", contract.pk)
            for user_id in (contract.client_id, contract.freelancer_id):
                self._event(events, user_id, 'contract_completed', contract)

    # -- read side ----------------------------------------------------------

    @staticmethod
    def get_contract_for(user, contract_id):
        contract = (
            Contract.objects.select_related('client', 'freelancer')
            .prefetch_related('milestones__deliverables', 'signatures', 'amendments')
            .filter(pk=contract_id)
            .first()
        )
        if contract is None:
            raise NotFound("Contract not found.")
        if not getattr(user, 'is_staff', False):
            require_participant(contract, user, "view it")
        return contract

    # -- aggregate creation -------------------------------------------------

    def create_contract(
        self,
        *,
        client,
        freelancer,
        project_ref,
        proposal_ref,
        title,
        description,
        total_amount,
        start_date,
        end_date,
        milestones=None,
        terms=None,
        currency=None,
        source_type='proposal',
    ):
        """
        Build a ``draft`` contract from an accepted proposal. Milestone amounts
        must add up to the contract total.
        """
        if client.pk == freelancer.pk:
            raise ValidationError("Client and freelancer must be different users.")
        if freelancer.user_type != 'freelancer':
            raise ValidationError("Contracts can only be offered to freelancer accounts.")
        title = _require_text(title, "Title", min_length=5, max_length=200)
        description = _require_text(description, "Description", min_length=10, max_length=2000)
        total_amount = _to_decimal(total_amount, "Total amount")
        if total_amount <= 0:
            raise ValidationError("Total amount must be greater than zero.")
        start_date = _to_date(start_date, "Start date")
        end_date = _to_date(end_date, "End date")
        if start_date >= end_date:
            raise ValidationError("End date must be after start date.")
        if source_type not in dict(Contract.SOURCE_CHOICES):
            raise ValidationError(f"Unknown source type '{source_type}'.")

        cleaned_milestones = [clean_milestone_entry(entry) for entry in (milestones or [])]
        if cleaned_milestones:
            milestone_total = sum((m['amount'] for m in cleaned_milestones), Decimal('0.00'))
            if abs(milestone_total - total_amount) > AMOUNT_TOLERANCE:
                raise ValidationError(
                    f"Total milestone amount ({milestone_total}) must equal contract total amount ({total_amount})."
                )

        merged_terms = default_terms()
        if terms:
            merged_terms.update(clean_terms(terms))

        if Contract.objects.filter(proposal_ref=proposal_ref).exists():
            raise ValidationError("Contract already exists for this proposal.")

        try:
            with transaction.atomic():
                contract = Contract.objects.create(
                    project_ref=str(project_ref),
                    proposal_ref=str(proposal_ref),
                    source_type=source_type,
                    client=client,
                    freelancer=freelancer,
                    title=title,
                    description=description,
                    total_amount=total_amount,
                    currency=(currency or settings.DEFAULT_CURRENCY).upper(),
                    start_date=start_date,
                    end_date=end_date,
                    terms=merged_terms,
                )
                Milestone.objects.bulk_create([
                    Milestone(contract=contract, position=position, **{k: v for k, v in entry.items() if k != 'id'})
                    for position, entry in enumerate(cleaned_milestones)
                ])
        except IntegrityError:
            raise ValidationError("Contract already exists for this proposal.")

        logger.info(
            "Contract %s created in draft for proposal %s (client=%s, freelancer=%s)",
            contract.pk, proposal_ref, client.pk, freelancer.pk,
        )
        return contract

    # -- signature ledger ---------------------------------------------------

    def sign(self, contract_id, user, ip_address=None, user_agent=None, expected_version=None):
        with self.mutate(contract_id, expected_version) as (contract, events):
            role = require_participant(contract, user, "sign it")
            if contract.signatures.filter(signed_by_id=user.pk).exists():
                raise AlreadySigned()
            if contract.status != 'draft':
                raise InvalidTransition(f"Only draft contracts can be signed; this contract is {contract.status}.")

            signed_at = timezone.now()
            ip_address = ip_address or 'unknown'
            user_agent = user_agent or 'unknown'
            digest = hashlib.sha256(
                f"{user.pk}-{int(signed_at.timestamp() * 1000)}-{ip_address}-{user_agent}".encode()
            ).hexdigest()
            Signature.objects.create(
                contract=contract,
                signed_by_id=user.pk,
                signed_at=signed_at,
                ip_address=ip_address[:64],
                user_agent=user_agent[:500],
                signature_hash=digest,
            )
            logger.info("Contract %s signed by %s (%s)", contract.pk, user.pk, role.value)

            if contract.is_fully_signed():
                contract.status = advance_contract(contract, 'activate')
                logger.info("Contract %s activated: both parties signed", contract.pk)
                for user_id in (contract.client_id, contract.freelancer_id):
                    self._event(events, user_id, 'contract_activated', contract)
            else:
                self._event(events, counterparty_id(contract, role), 'contract_signed', contract, signed_by=user.pk)
        return contract

    # -- milestone state machine --------------------------------------------

    def start_milestone(self, contract_id, milestone_id, user, expected_version=None):
        with self.mutate(contract_id, expected_version) as (contract, events):
            require_role(contract, user, ParticipantRole.FREELANCER, "start milestones")
            milestone = contract.get_milestone(milestone_id)
            self._require_active(contract, "started")
            milestone.status = advance_milestone(milestone, 'start')
            milestone.save(update_fields=['status'])
            logger.info("Milestone %s on contract %s started", milestone.pk, contract.pk)
        return contract

    def submit_milestone(self, contract_id, milestone_id, user, deliverables=(), notes='', expected_version=None):
        with self.mutate(contract_id, expected_version) as (contract, events):
            require_role(contract, user, ParticipantRole.FREELANCER, "submit milestones")
            milestone = contract.get_milestone(milestone_id)
            self._require_active(contract, "submitted")
            next_status = advance_milestone(milestone, 'submit')
            cleaned = [self._clean_deliverable(item) for item in deliverables or ()]

            now = timezone.now()
            milestone.status = next_status
            milestone.submitted_at = now
            milestone.freelancer_notes = notes or ''
            milestone.save(update_fields=['status', 'submitted_at', 'freelancer_notes'])
            Deliverable.objects.bulk_create([
                Deliverable(milestone=milestone, status='submitted', submitted_at=now, **item)
                for item in cleaned
            ])
            logger.info(
                "Milestone %s on contract %s submitted with %d deliverable(s)",
                milestone.pk, contract.pk, len(cleaned),
            )
            self._event(events, contract.client_id, 'milestone_submitted', contract, milestone_id=milestone.pk)
        return contract

    @staticmethod
    def _clean_deliverable(item):
        if not isinstance(item, dict):
            raise ValidationError("Each deliverable must be an object.")
        deliverable_type = item.get('deliverable_type') or item.get('type') or 'text'
        if deliverable_type not in DELIVERABLE_TYPES:
            raise ValidationError(f"Unknown deliverable type '{deliverable_type}'.")
        return {
            'title': _require_text(item.get('title'), "Deliverable title", max_length=200),
            'description': (item.get('description') or '')[:1000],
            'deliverable_type': deliverable_type,
            'content': item.get('content') or '',
            'file_ref': item.get('file_ref') or '',
        }

    def approve_milestone(self, contract_id, milestone_id, user, feedback='', expected_version=None):
        with self.mutate(contract_id, expected_version) as (contract, events):
            require_role(contract, user, ParticipantRole.CLIENT, "approve milestones")
            milestone = contract.get_milestone(milestone_id)
            self._require_active(contract, "approved")
            next_status = advance_milestone(milestone, 'approve')

            now = timezone.now()
            milestone.status = next_status
            milestone.approved_at = now
            milestone.client_feedback = feedback or ''
            milestone.save(update_fields=['status', 'approved_at', 'client_feedback'])
            milestone.deliverables.filter(status='submitted').update(status='approved', approved_at=now)
            logger.info("Milestone %s on contract %s approved", milestone.pk, contract.pk)
            self._event(events, contract.freelancer_id, 'milestone_approved', contract, milestone_id=milestone.pk)
        return contract

    def reject_milestone(self, contract_id, milestone_id, user, feedback='', expected_version=None):
        with self.mutate(contract_id, expected_version) as (contract, events):
            require_role(contract, user, ParticipantRole.CLIENT, "reject milestones")
            milestone = contract.get_milestone(milestone_id)
            self._require_active(contract, "rejected")
            next_status = advance_milestone(milestone, 'reject')
            feedback = _require_text(feedback, "Rejection feedback", max_length=1000)

            now = timezone.now()
            milestone.status = next_status
            milestone.rejected_at = now
            milestone.client_feedback = feedback
            milestone.save(update_fields=['status', 'rejected_at', 'client_feedback'])
            milestone.deliverables.filter(status='submitted').update(
                status='rejected', rejected_at=now, client_feedback=feedback,
            )
            logger.info("Milestone %s on contract %s rejected", milestone.pk, contract.pk)
            self._event(events, contract.freelancer_id, 'milestone_rejected', contract, milestone_id=milestone.pk)
        return contract

    def mark_milestone_paid(self, contract_id, milestone_id):
        """
        Move an approved milestone to ``paid``. Only the payment orchestrator
        calls this, after the processor confirmed the release.
        """
        with self.mutate(contract_id) as (contract, events):
            milestone = contract.get_milestone(milestone_id)
            self._require_active(contract, "paid")
            milestone.status = advance_milestone(milestone, 'mark_paid')
            milestone.paid_at = timezone.now()
            milestone.save(update_fields=['status', 'paid_at'])
            logger.info("Milestone %s on contract %s marked paid", milestone.pk, contract.pk)
            self._event(events, contract.freelancer_id, 'milestone_paid', contract, milestone_id=milestone.pk)
            self._complete_if_settled(contract, events)
        return contract

    # -- amendment workflow -------------------------------------------------

    def propose_amendment(
        self, contract_id, user, amendment_type, description, changes, reason, expected_version=None,
    ):
        with self.mutate(contract_id, expected_version) as (contract, events):
            role = require_participant(contract, user, "propose amendments")
            if contract.status != 'active':
                raise ContractNotActive("Amendments can only be proposed for active contracts.")
            if amendment_type not in AMENDMENT_TYPES:
                raise ValidationError(f"Unknown amendment type '{amendment_type}'.")
            description = _require_text(description, "Description", max_length=1000)
            reason = _require_text(reason, "Reason", max_length=500)
            cleaned_changes = self._clean_changes(contract, amendment_type, changes)

            amendment = Amendment.objects.create(
                contract=contract,
                amendment_type=amendment_type,
                description=description,
                changes=cleaned_changes,
                reason=reason,
                proposed_by_id=user.pk,
            )
            logger.info("Amendment %s (%s) proposed on contract %s", amendment.pk, amendment_type, contract.pk)
            self._event(
                events, counterparty_id(contract, role), 'amendment_proposed', contract, amendment_id=amendment.pk,
            )
        amendment.contract = contract
        return amendment

    def _clean_changes(self, contract, amendment_type, changes):
        """Validate a change payload and return its JSON-safe form."""
        if not isinstance(changes, dict):
            raise ValidationError("Changes must be an object.")

        if amendment_type == 'milestone_change':
            entries = changes.get('milestones')
            if not isinstance(entries, list) or not entries:
                raise ValidationError("A milestone change needs a non-empty 'milestones' list.")
            cleaned = []
            for entry in entries:
                item = clean_milestone_entry(entry, partial=isinstance(entry, dict) and entry.get('id') is not None)
                if 'amount' in item:
                    item['amount'] = str(item['amount'])
                if 'due_date' in item:
                    item['due_date'] = item['due_date'].isoformat()
                cleaned.append(item)
            return {'milestones': cleaned}

        if amendment_type == 'timeline_change':
            end_date = _to_date(changes.get('end_date'), "End date")
            if end_date <= contract.start_date:
                raise ValidationError("End date must be after start date.")
            return {'end_date': end_date.isoformat()}

        if amendment_type == 'amount_change':
            total_amount = _to_decimal(changes.get('total_amount'), "Total amount")
            if total_amount <= 0:
                raise ValidationError("Total amount must be greater than zero.")
            return {'total_amount': str(total_amount)}

        if amendment_type == 'terms_change':
            return {'terms': clean_terms(changes.get('terms'))}

        return changes

    def respond_to_amendment(self, contract_id, amendment_id, user, status, notes='', expected_version=None):
        with self.mutate(contract_id, expected_version) as (contract, events):
            require_participant(contract, user, "respond to amendments")
            amendment = contract.get_amendment(amendment_id)
            if amendment.proposed_by_id == user.pk:
                raise Forbidden("You proposed this amendment; only the other party can respond to it.")
            proposer_role = ParticipantRole.CLIENT if amendment.proposed_by_id == contract.client_id else ParticipantRole.FREELANCER
            if user.pk != counterparty_id(contract, proposer_role):
                raise Forbidden("Only the other party on this contract can respond to this amendment.")
            if amendment.status != 'pending':
                raise AlreadyResponded(f"Amendment has already been {amendment.status}.")
            if status not in ('accepted', 'rejected'):
                raise ValidationError("Status must be 'accepted' or 'rejected'.")
            if contract.status in CONTRACT_SINK_STATES:
                raise InvalidTransition(f"Amendments cannot be settled while the contract is {contract.status}.")

            if status == 'accepted':
                self._apply_amendment(contract, amendment)
                self._complete_if_settled(contract, events)

            amendment.status = advance_amendment(amendment, status)
            amendment.responded_at = timezone.now()
            amendment.responded_by_id = user.pk
            amendment.response_notes = (notes or '')[:500]
            amendment.save(update_fields=['status', 'responded_at', 'responded_by', 'response_notes'])
            logger.info("Amendment %s on contract %s %s", amendment.pk, contract.pk, status)
            self._event(
                events, amendment.proposed_by_id, 'amendment_responded', contract,
                amendment_id=amendment.pk, status=status,
            )
        amendment.contract = contract
        return amendment

    def _apply_amendment(self, contract, amendment):
        changes = amendment.changes or {}
        if amendment.amendment_type == 'milestone_change':
            self._replace_milestones(contract, changes.get('milestones') or [])
        elif amendment.amendment_type == 'timeline_change':
            contract.end_date = _to_date(changes.get('end_date'), "End date")
            if contract.end_date <= contract.start_date:
                raise ValidationError("End date must be after start date.")
        elif amendment.amendment_type == 'amount_change':
            contract.total_amount = _to_decimal(changes.get('total_amount'), "Total amount")
        elif amendment.amendment_type == 'terms_change':
            contract.terms = {**(contract.terms or {}), **clean_terms(changes.get('terms'))}

    def _replace_milestones(self, contract, entries):
        """
        Replace the milestone list with ``entries``. Entries with an ``id``
        keep that milestone (and its history); entries without one are new.
        Frozen milestones can be neither edited nor dropped, and surviving
        milestones keep their relative order.
        """
        existing = {m.pk: m for m in contract.milestones.all()}
        cleaned = [clean_milestone_entry(entry, partial=entry.get('id') is not None) for entry in entries]

        kept_ids = [entry['id'] for entry in cleaned if 'id' in entry]
        if len(kept_ids) != len(set(kept_ids)):
            raise ValidationError("A milestone may appear only once in a milestone change.")
        for milestone_id in kept_ids:
            if milestone_id not in existing:
                raise ValidationError(f"Milestone {milestone_id} does not belong to this contract.")
        current_order = [pk for pk in existing if pk in kept_ids]
        if kept_ids != current_order:
            raise ValidationError("Existing milestones cannot be reordered.")

        for pk, milestone in existing.items():
            if pk not in kept_ids and milestone.status in LOCKED_MILESTONE_STATES:
                raise InvalidTransition(
                    f"Milestone '{milestone.title}' is {milestone.status} and cannot be removed."
                )

        for position, entry in enumerate(cleaned):
            if 'id' not in entry:
                missing = [f for f in MILESTONE_EDITABLE_FIELDS if f not in entry]
                if missing:
                    raise ValidationError(f"New milestone is missing: {', '.join(missing)}.")
                Milestone.objects.create(contract=contract, position=position, **entry)
                continue

            milestone = existing[entry['id']]
            edits = {f: entry[f] for f in MILESTONE_EDITABLE_FIELDS if f in entry and getattr(milestone, f) != entry[f]}
            if edits and milestone.status in LOCKED_MILESTONE_STATES:
                raise InvalidTransition(
                    f"Milestone '{milestone.title}' is {milestone.status} and can no longer be changed."
                )
            for field, value in edits.items():
                setattr(milestone, field, value)
            milestone.position = position
            milestone.save(update_fields=[*edits, 'position'])

        for pk, milestone in existing.items():
            if pk not in kept_ids:
                milestone.delete()
        logger.info("Milestones on contract %s replaced (%d now)", contract.pk, len(cleaned))

    # -- dispute & cancellation ---------------------------------------------

    def cancel(self, contract_id, user, reason='', expected_version=None):
        with self.mutate(contract_id, expected_version) as (contract, events):
            role = require_participant(contract, user, "cancel it")
            if contract.status not in ('draft', 'active'):
                raise InvalidTransition(f"Contract cannot be cancelled in its current status ({contract.status}).")
            contract.status = advance_contract(contract, 'cancel')
            now = timezone.now()
            Amendment.objects.create(
                contract=contract,
                amendment_type='scope_change',
                description='Contract cancellation',
                changes={'status': 'cancelled'},
                reason=(reason or 'Contract cancelled by user')[:500],
                proposed_by_id=user.pk,
                proposed_at=now,
                status='accepted',
                responded_at=now,
                responded_by_id=user.pk,
            )
            logger.info("Contract %s cancelled by %s", contract.pk, user.pk)
            self._event(events, counterparty_id(contract, role), 'contract_cancelled', contract, reason=reason)
        return contract

    def dispute(self, contract_id, user, reason, description='', evidence=(), expected_version=None):
        with self.mutate(contract_id, expected_version) as (contract, events):
            role = require_participant(contract, user, "dispute it")
            reason = _require_text(reason, "Reason", max_length=500)
            if contract.status == 'disputed':
                raise InvalidTransition("A dispute has already been raised for this contract.")
            contract.status = advance_contract(contract, 'dispute')
            Amendment.objects.create(
                contract=contract,
                amendment_type='scope_change',
                description=(description or 'Contract dispute')[:1000],
                changes={
                    'status': 'disputed',
                    'description': description or '',
                    'evidence': [str(item) for item in evidence or ()],
                },
                reason=reason,
                proposed_by_id=user.pk,
            )
            logger.info("Contract %s disputed by %s", contract.pk, user.pk)
            self._event(events, counterparty_id(contract, role), 'contract_disputed', contract, reason=reason)
        return contract

    def pause(self, contract_id, user, reason='', expected_version=None):
        with self.mutate(contract_id, expected_version) as (contract, events):
            role = require_participant(contract, user, "pause it")
            contract.status = advance_contract(contract, 'pause')
            logger.info("Contract %s paused by %s: %s", contract.pk, user.pk, reason or '-')
            self._event(events, counterparty_id(contract, role), 'contract_paused', contract, reason=reason)
        return contract

    def resume(self, contract_id, user, expected_version=None):
        with self.mutate(contract_id, expected_version) as (contract, events):
            role = require_participant(contract, user, "resume it")
            contract.status = advance_contract(contract, 'resume')
            logger.info("Contract %s resumed by %s", contract.pk, user.pk)
            self._event(events, counterparty_id(contract, role), 'contract_resumed', contract)
        return contract
