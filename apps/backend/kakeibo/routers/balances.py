from fastapi import APIRouter

from kakeibo.api.balances import handlers
from kakeibo.schemas import BalanceOut, BalanceSummaryOut

router = APIRouter(prefix="/balances", tags=["balances"])

router.add_api_route(
    "",
    handlers.list_balances,
    methods=["GET"],
    response_model=list[BalanceOut],
)

router.add_api_route(
    "/summary",
    handlers.get_balance_summary,
    methods=["GET"],
    response_model=BalanceSummaryOut,
)

router.add_api_route(
    "",
    handlers.update_balance,
    methods=["PUT"],
    response_model=BalanceOut,
)

router.add_api_route(
    "/recalculate",
    handlers.recalculate_balances,
    methods=["POST"],
    response_model=BalanceSummaryOut,
)
