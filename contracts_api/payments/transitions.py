from contracts.transitions import advance

TRANSACTION_TRANSITIONS = {
    ('pending', 'submit'): 'processing',
    ('processing', 'confirm'): 'held_in_escrow',
    ('processing', 'fail'): 'failed',
    ('pending', 'fail'): 'failed',
    ('pending', 'cancel'): 'cancelled',
    ('processing', 'cancel'): 'cancelled',
    ('held_in_escrow', 'release'): 'released',
    ('held_in_escrow', 'refund'): 'refunded',
}

TRANSACTION_ACTION_MESSAGES = {
    'confirm': "Escrow payment has not been submitted for confirmation",
    'release': "Funds are not held in escrow",
    'refund': "Only funds held in escrow can be refunded",
    'fail': "Transaction is no longer awaiting confirmation",
    'cancel': "Transaction is no longer awaiting confirmation",
}


def advance_transaction(tx, action):
    base = TRANSACTION_ACTION_MESSAGES.get(action, f"Cannot {action} this transaction")
    return advance(TRANSACTION_TRANSITIONS, tx.status, action, f"{base} (current status: {tx.status}).")
