"""Transactions router (creation path and listing)."""

from fastapi import APIRouter

from kakeibo.api.transactions import handlers
from kakeibo.schemas import TransactionOut

router = APIRouter(prefix="/transactions", tags=["transactions"])

router.add_api_route(
    "",
    handlers.create_transaction,
    methods=["POST"],
    response_model=TransactionOut,
    status_code=201,
)

router.add_api_route(
    "",
    handlers.list_transactions,
    methods=["GET"],
    response_model=list[TransactionOut],
)

router.add_api_route(
    "/{transaction_id}",
    handlers.get_transaction,
    methods=["GET"],
    response_model=TransactionOut,
)
