"""Transactional multi-step repository mutation.

- actions: compensations, their persisted records and reconstruction
- transaction: Transaction and RollbackReport
- store: RecoveryStore, one JSON file per pending transaction
- recovery: validation and replay of persisted transactions
"""

from gx.txn.actions import (
    CLEANUP_TAG,
    ActionRecord,
    Callback,
    Compensation,
    DeleteBackup,
    DeleteRemoteBranch,
    OperationType,
    PopStash,
    RemoveFile,
    ResetCommit,
    ResetHard,
    RestoreBranch,
    RestoreFile,
    compensation_from_record,
)
from gx.txn.recovery import ValidationResult, execute_recovery, validate_rollback_operations
from gx.txn.store import CleanupSummary, RecoveryError, RecoveryStore, TransactionState
from gx.txn.transaction import (
    ActionFailure,
    RollbackReport,
    Transaction,
    TransactionStats,
    execute_actions,
)

__all__ = [
    # Actions
    "CLEANUP_TAG",
    "ActionRecord",
    "Callback",
    "Compensation",
    "DeleteBackup",
    "DeleteRemoteBranch",
    "OperationType",
    "PopStash",
    "RemoveFile",
    "ResetCommit",
    "ResetHard",
    "RestoreBranch",
    "RestoreFile",
    "compensation_from_record",
    # Transaction
    "ActionFailure",
    "RollbackReport",
    "Transaction",
    "TransactionStats",
    "execute_actions",
    # Persistence
    "CleanupSummary",
    "RecoveryError",
    "RecoveryStore",
    "TransactionState",
    # Recovery
    "ValidationResult",
    "execute_recovery",
    "validate_rollback_operations",
]
