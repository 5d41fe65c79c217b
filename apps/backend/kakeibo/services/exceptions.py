"""Expected failures of the card withdrawal and ledger services.

Each carries a stable ``code`` so HTTP handlers and batch reports can tell
them apart without parsing messages.
"""


class KakeiboServiceError(Exception):
    code = "service_error"
    status_code = 400

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    default_message = "Operation failed"

    @property
    def reason(self) -> str:
        return str(self)


class CardWithdrawalError(KakeiboServiceError):
    code = "card_withdrawal_error"


class ChargeNotFoundError(CardWithdrawalError):
    code = "not_found"
    status_code = 404
    default_message = "Card charge or card information not found"


class ChargeAlreadyConvertedError(CardWithdrawalError):
    code = "already_converted"
    default_message = "Card charge is already converted"


class ChargeNotConvertedError(CardWithdrawalError):
    code = "not_converted"
    default_message = "Card charge is not converted"


class WithdrawalBankUnavailableError(CardWithdrawalError):
    code = "no_withdrawal_payment_method"
    default_message = "No active payment method for the withdrawal bank"


class CardConfigNotFoundError(CardWithdrawalError):
    code = "card_config_not_found"
    status_code = 404
    default_message = "Card billing configuration not found"


class LedgerError(KakeiboServiceError):
    code = "ledger_error"
    default_message = "Balance update failed"


class PaymentMethodNotFoundError(KakeiboServiceError):
    code = "payment_method_not_found"
    status_code = 404
    default_message = "Payment method not found"


class MasterDataError(KakeiboServiceError):
    code = "invalid_master_data"


class InvalidTransactionError(KakeiboServiceError):
    code = "invalid_transaction"
    default_message = "Card purchases must be recorded as expenses"


class DuplicateNameError(MasterDataError):
    code = "duplicate_name"
    status_code = 409
    default_message = "An entry with the same name already exists"
