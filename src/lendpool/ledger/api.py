"""
FastAPI application for the lending ledger.

The caller identity is taken from the ``X-Caller`` header.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Header, Query, Request
from fastapi.responses import JSONResponse

from ..config import settings
from ..health import HealthChecker, create_health_endpoints, expired_loans_check, ledger_solvency_check
from ..logging import get_logger, trace_context
from .assets import AssetRegistry, ReserveToken
from .errors import (
    AccessDenied, InsufficientCollateral, InvalidAccount, InvalidRatio,
    InvalidReserve, LedgerError, NoSuchLoan, UnknownAsset
)
from .manager import LendingLedger
from .models import (
    BorrowRequest, DepositRequest, InterestRateRequest, LoanRatioRequest,
    OwnershipTransferRequest, RepayRequest
)
from .service import LedgerService

logger = get_logger(__name__)

# Global service instance
ledger_service: Optional[LedgerService] = None

ERROR_STATUS = {
    AccessDenied: 403,
    NoSuchLoan: 404,
    UnknownAsset: 404,
    InvalidReserve: 422,
    InvalidRatio: 422,
    InvalidAccount: 422,
    InsufficientCollateral: 422,
}


def error_status(error: LedgerError) -> int:
    """HTTP status for a ledger rejection; state conflicts map to 409."""
    for error_type, status in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return status
    return 409


def build_service() -> LedgerService:
    """Create the ledger service from settings."""
    assets = AssetRegistry()
    for address, symbol in settings.ledger.reserve_assets.items():
        assets.register(ReserveToken(address, symbol))

    ledger = LendingLedger.from_settings(settings.ledger, assets=assets)
    return LedgerService(
        {
            'service_config': {
                'kafka_enabled': settings.kafka.enabled,
                'kafka_servers': settings.kafka.bootstrap_servers,
                'producer_timeout_ms': settings.kafka.producer_timeout_ms,
                'topic_loan_events': settings.kafka.topic_loan_events,
                'topic_config_events': settings.kafka.topic_config_events,
                'topic_risk_alerts': settings.kafka.topic_risk_alerts,
                'expiry_check_interval': settings.monitoring.expiry_check_interval,
            }
        },
        ledger=ledger
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage service lifecycle."""
    global ledger_service

    logger.info("Starting Ledger API...")
    ledger_service = build_service()
    # start() runs until stop() is called
    task = asyncio.create_task(ledger_service.start())

    yield

    await ledger_service.stop()
    task.cancel()


app = FastAPI(
    title="LendPool Ledger",
    description="Collateralized lending pool with fixed-period loans",
    version="1.0.0",
    lifespan=lifespan
)

health_checker = HealthChecker("lendpool-ledger")
health_checker.register_check("ledger_solvency", lambda: ledger_solvency_check(_service().ledger))
health_checker.register_check("expired_loans", lambda: expired_loans_check(_service().ledger))
create_health_endpoints(app, health_checker)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    """Surface the rejection code verbatim."""
    return JSONResponse(status_code=error_status(exc), content=exc.to_dict())


def _service() -> LedgerService:
    if not ledger_service:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return ledger_service


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "LendPool Ledger",
        "version": "1.0.0",
        "status": "active",
        "description": "Collateralized lending pool with fixed-period loans"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.utcnow().isoformat()}


@app.get("/status")
async def get_status():
    """Get service status and ledger metrics."""
    service = _service()

    return {
        "timestamp": datetime.utcnow().isoformat(),
        "service": "lendpool-ledger",
        "status": "active" if service.running else "inactive",
        "current_state": service.get_current_state()
    }


@app.get("/config/interest-rate")
async def get_interest_rate():
    """Get the global interest rate."""
    ledger = _service().ledger
    return {"interest_rate": ledger.interest_rate, "loan_period": ledger.loan_period}


@app.put("/config/interest-rate")
async def set_interest_rate(request: InterestRateRequest, x_caller: str = Header(...)):
    """Replace the global interest rate (administrator only)."""
    ledger = _service().ledger
    with trace_context():
        ledger.set_interest_rate(x_caller, request.rate)
    return {"interest_rate": ledger.interest_rate}


@app.get("/config/loan-ratios/{reserve}")
async def get_loan_ratio(reserve: str):
    """Get the loan ratio configured for a reserve."""
    return {"reserve": reserve, "loan_ratio": _service().ledger.loan_ratio(reserve)}


@app.put("/config/loan-ratios/{reserve}")
async def set_loan_ratio(reserve: str, request: LoanRatioRequest, x_caller: str = Header(...)):
    """Set the loan ratio for a reserve (administrator only)."""
    ledger = _service().ledger
    with trace_context():
        ledger.set_loan_ratio(x_caller, reserve, request.ratio)
    return {"reserve": reserve, "loan_ratio": ledger.loan_ratio(reserve)}


@app.put("/config/administrator")
async def transfer_ownership(request: OwnershipTransferRequest, x_caller: str = Header(...)):
    """Hand administration to another identity (administrator only)."""
    ledger = _service().ledger
    with trace_context():
        ledger.transfer_ownership(x_caller, request.new_administrator)
    return {"administrator": ledger.administrator}


@app.post("/deposits")
async def deposit(request: DepositRequest, x_caller: str = Header(...)):
    """Add reserve liquidity to the pool."""
    ledger = _service().ledger
    with trace_context():
        ledger.deposit(x_caller, request.reserve, request.amount)
    return {
        "status": "deposited",
        "reserve": request.reserve,
        "amount": request.amount,
        "pool_liquidity": ledger.pool_liquidity(request.reserve)
    }


@app.post("/loans")
async def borrow(request: BorrowRequest, x_caller: str = Header(...)):
    """Open a loan against native collateral."""
    ledger = _service().ledger
    with trace_context():
        loan = ledger.borrow(x_caller, request.reserve, request.collateral)
    return {"status": "opened", "borrower": x_caller, "loan": loan.model_dump()}


@app.post("/loans/repay")
async def repay(request: RepayRequest, x_caller: str = Header(...)):
    """Repay the caller's loan and release the collateral."""
    ledger = _service().ledger
    with trace_context():
        loan = ledger.repay(x_caller, request.reserve, request.amount)
    return {"status": "repaid", "borrower": x_caller, "loan": loan.model_dump()}


@app.post("/loans/{borrower}/claim")
async def claim_collateral(borrower: str, x_caller: str = Header(...)):
    """Seize collateral of an expired loan (administrator only)."""
    ledger = _service().ledger
    with trace_context():
        loan = ledger.claim_collateral(x_caller, borrower)
    return {"status": "claimed", "borrower": borrower, "loan": loan.model_dump()}


@app.get("/loans/{borrower}")
async def get_loan(borrower: str):
    """Get a borrower's loan with its current owed amount."""
    view = _service().ledger.loan_view(borrower)
    return view.model_dump(mode="json")


@app.get("/pool/{reserve}")
async def get_pool(reserve: str):
    """Get pool liquidity for a reserve."""
    ledger = _service().ledger
    return {
        "reserve": reserve,
        "liquidity": ledger.pool_liquidity(reserve),
        "loan_ratio": ledger.loan_ratio(reserve)
    }


@app.get("/events")
async def get_events(since: int = Query(0, ge=0), limit: int = Query(100, ge=1)):
    """Get recorded ledger events."""
    events = _service().ledger.events_since(since)[:limit]
    return {
        "timestamp": datetime.utcnow().isoformat(),
        "count": len(events),
        "events": [event.model_dump(mode="json") for event in events]
    }
