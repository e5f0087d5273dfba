"""
Error taxonomy for the contract and escrow engine.

Every error is a DRF ``APIException`` so views can let them propagate and
DRF renders ``{"detail": <reason>}`` with the matching status code. Services
raise these before mutating anything; a rejected call never leaves a
half-applied transition behind.
"""
from rest_framework import status
from rest_framework.exceptions import APIException


class ContractError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The request could not be processed."
    default_code = 'contract_error'


class ValidationError(ContractError):
    default_detail = "Invalid input."
    default_code = 'validation_error'


class Forbidden(ContractError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You are not allowed to perform this action on this contract."
    default_code = 'forbidden'


class NotFound(ContractError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = 'not_found'


class InvalidTransition(ContractError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The current state does not permit this action."
    default_code = 'invalid_transition'


class ContractNotActive(InvalidTransition):
    default_detail = "Contract is not active."
    default_code = 'contract_not_active'


class ConcurrentModification(InvalidTransition):
    default_detail = "Contract was modified by another request. Reload and try again."
    default_code = 'concurrent_modification'


class AlreadySigned(ContractError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "You have already signed this contract."
    default_code = 'already_signed'


class AlreadyResponded(ContractError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Amendment has already been responded to."
    default_code = 'already_responded'


class PaymentProcessorError(ContractError):
    """External processor call failed. Local state was left untouched."""
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Payment processor request failed."
    default_code = 'payment_processor_error'


class TransientPaymentProcessorError(PaymentProcessorError):
    """Safe to retry: nothing was recorded locally."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Payment processor is temporarily unavailable. Please retry."
    default_code = 'payment_processor_transient'


class PermanentPaymentProcessorError(PaymentProcessorError):
    """Retrying will not help; needs manual intervention."""
    default_detail = "Payment processor rejected the request."
    default_code = 'payment_processor_permanent'


PaymentProcessorError.Transient = TransientPaymentProcessorError
PaymentProcessorError.Permanent = PermanentPaymentProcessorError
