from battery_ledger.store.change_feed import (
    ChangeFeedSubscription,
    ChangeType,
    DocumentChange,
    FeedSnapshot,
)
from battery_ledger.store.transaction import (
    DocumentExistsError,
    Transaction,
    TransactionAbortedError,
    TransactionConflictError,
    run_transaction,
)

__all__ = [
    "ChangeFeedSubscription",
    "ChangeType",
    "DocumentChange",
    "DocumentExistsError",
    "FeedSnapshot",
    "Transaction",
    "TransactionAbortedError",
    "TransactionConflictError",
    "run_transaction",
]
