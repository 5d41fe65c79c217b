"""Masters router: banks, cards and payment methods."""

from fastapi import APIRouter

from kakeibo.api.masters import handlers
from kakeibo.schemas import BankOut, CardOut, PaymentMethodOut

router = APIRouter(prefix="/masters", tags=["masters"])

router.add_api_route(
    "/banks",
    handlers.list_banks,
    methods=["GET"],
    response_model=list[BankOut],
)

router.add_api_route(
    "/banks",
    handlers.create_bank,
    methods=["POST"],
    response_model=BankOut,
    status_code=201,
)

router.add_api_route(
    "/cards",
    handlers.list_cards,
    methods=["GET"],
    response_model=list[CardOut],
)

router.add_api_route(
    "/cards",
    handlers.create_card,
    methods=["POST"],
    response_model=CardOut,
    status_code=201,
)

router.add_api_route(
    "/payment-methods",
    handlers.list_payment_methods,
    methods=["GET"],
    response_model=list[PaymentMethodOut],
)

router.add_api_route(
    "/payment-methods",
    handlers.create_payment_method,
    methods=["POST"],
    response_model=PaymentMethodOut,
    status_code=201,
)
