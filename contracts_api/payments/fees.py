from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings

CENTS = Decimal('0.01')


def to_cents(value):
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_breakdown(amount, rate=None, minimum=None, maximum=None):
    """
    Split ``amount`` into platform commission and freelancer share.

    The commission is ``amount * rate`` clamped to ``[minimum, maximum]``
    (a zero bound means unbounded), capped at ``amount`` and rounded half-up
    to cents. The two parts always add back up to ``amount``.
    """
    amount = to_cents(amount)
    rate = Decimal(str(settings.PLATFORM_COMMISSION_RATE if rate is None else rate))
    minimum = Decimal(str(settings.PLATFORM_MIN_COMMISSION if minimum is None else minimum))
    maximum = Decimal(str(settings.PLATFORM_MAX_COMMISSION if maximum is None else maximum))

    commission = amount * rate
    if minimum and commission < minimum:
        commission = minimum
    if maximum and commission > maximum:
        commission = maximum
    commission = min(to_cents(commission), amount)

    return {
        'amount': amount,
        'platform_commission': commission,
        'freelancer_amount': amount - commission,
    }
