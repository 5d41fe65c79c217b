"""Card withdrawal router: conversion of due card charges into bank expenses."""

from fastapi import APIRouter

from kakeibo.api.card_withdrawals import handlers
from kakeibo.schemas import (
    CardWithdrawalResult,
    PendingChargeOut,
    TransactionOut,
    WithdrawalDateOut,
    WithdrawalSchedule,
)

router = APIRouter(prefix="/card-withdrawals", tags=["card-withdrawals"])

router.add_api_route(
    "/process",
    handlers.process_card_withdrawals,
    methods=["POST"],
    response_model=CardWithdrawalResult,
)

router.add_api_route(
    "/convert/{charge_id}",
    handlers.convert_charge,
    methods=["POST"],
    response_model=TransactionOut,
)

router.add_api_route(
    "/revert/{charge_id}",
    handlers.revert_conversion,
    methods=["POST"],
    response_model=TransactionOut,
)

router.add_api_route(
    "/{charge_id}/withdrawal-date",
    handlers.compute_withdrawal_date,
    methods=["POST"],
    response_model=WithdrawalDateOut,
)

router.add_api_route(
    "/pending",
    handlers.list_pending_charges,
    methods=["GET"],
    response_model=list[PendingChargeOut],
)

router.add_api_route(
    "/schedule",
    handlers.get_withdrawal_schedule,
    methods=["GET"],
    response_model=WithdrawalSchedule,
)
