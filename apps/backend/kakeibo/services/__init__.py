"""
Services package

Business logic lives here; routers stay thin and only translate errors.
"""

from .balance_service import BalanceLedgerService
from .card_withdrawal_service import CardWithdrawalService
from .master_service import MasterDataService
from .transaction_service import TransactionService
from .withdrawal_schedule_service import WithdrawalScheduleService

__all__ = [
    "BalanceLedgerService",
    "CardWithdrawalService",
    "MasterDataService",
    "TransactionService",
    "WithdrawalScheduleService",
]
