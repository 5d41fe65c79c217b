"""Router aggregation: each feature router is mounted under ``/api``."""

from fastapi import FastAPI

from . import balances, card_withdrawals, masters, transactions


def register_routers(app: FastAPI) -> None:
    """Attach all API routes to the FastAPI application."""

    app.include_router(card_withdrawals.router, prefix="/api")
    app.include_router(transactions.router, prefix="/api")
    app.include_router(balances.router, prefix="/api")
    app.include_router(masters.router, prefix="/api")
