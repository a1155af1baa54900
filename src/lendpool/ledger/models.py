"""
Lending ledger data models.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field, field_validator

from .interest import is_expired

NULL_ADDRESS = "0x" + "0" * 40


def is_null_identity(value: Optional[str]) -> bool:
    """True for a missing, empty or all-zero account/reserve identifier."""
    if value is None:
        return True
    value = value.strip()
    return value == "" or value.lower() == NULL_ADDRESS


class LoanStatus(Enum):
    """Derived state of a loan record."""
    ACTIVE = "ACTIVE"  # Within the loan period, repayable
    EXPIRED = "EXPIRED"  # Past the loan period, awaiting collateral claim
    REPAID = "REPAID"
    CLAIMED = "CLAIMED"


class LedgerEventType(Enum):
    """Mutations recorded by the ledger."""
    INTEREST_RATE_SET = "INTEREST_RATE_SET"
    LOAN_RATIO_SET = "LOAN_RATIO_SET"
    DEPOSIT = "DEPOSIT"
    LOAN_OPENED = "LOAN_OPENED"
    LOAN_REPAID = "LOAN_REPAID"
    COLLATERAL_CLAIMED = "COLLATERAL_CLAIMED"
    OWNERSHIP_TRANSFERRED = "OWNERSHIP_TRANSFERRED"


class Loan(BaseModel):
    """A borrower's loan record."""
    reserve: str = Field(description="Reserve asset the loan was issued in")
    collateral: int = Field(gt=0, description="Native collateral locked at origination")
    principal: int = Field(gt=0, description="Reserve units issued at origination")
    origination_time: int = Field(description="Timestamp of the borrow, seconds since epoch")
    repaid: bool = False
    collateral_claimed: bool = False

    @property
    def is_terminated(self) -> bool:
        """Repaid or seized; a new loan may replace this record."""
        return self.repaid or self.collateral_claimed

    def status(self, now: int, loan_period: int) -> LoanStatus:
        if self.repaid:
            return LoanStatus.REPAID
        if self.collateral_claimed:
            return LoanStatus.CLAIMED
        if is_expired(self.origination_time, now, loan_period):
            return LoanStatus.EXPIRED
        return LoanStatus.ACTIVE


class LedgerEvent(BaseModel):
    """Record of a successful ledger mutation."""
    sequence: int
    event_type: LedgerEventType
    timestamp: int
    account: str = Field(description="Caller that triggered the mutation")
    reserve: Optional[str] = None
    amount: Optional[int] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    recorded_at: datetime = Field(default_factory=datetime.utcnow)

    def model_dump(self, **kwargs) -> dict:
        """Serialize to dict with enum handling."""
        data = super().model_dump(**kwargs)
        data['event_type'] = self.event_type.value
        return data


class LoanView(BaseModel):
    """Loan record plus values derived at query time."""
    borrower: str
    loan: Loan
    status: LoanStatus
    owed: int
    interest: int
    expires_at: int
    as_of: int


class InterestRateRequest(BaseModel):
    """Request to change the global interest rate."""
    rate: int = Field(ge=0, description="Interest rate scaled by 10,000")


class LoanRatioRequest(BaseModel):
    """Request to configure a reserve's loan ratio."""
    ratio: int = Field(ge=0, description="Reserve units per native unit, scaled by 10,000")


class DepositRequest(BaseModel):
    """Request to add reserve liquidity to the pool."""
    reserve: str
    amount: int = Field(gt=0, description="Reserve units to deposit")


class BorrowRequest(BaseModel):
    """Request to open a loan against native collateral."""
    reserve: str
    collateral: int = Field(ge=0, description="Native units sent as collateral")


class RepayRequest(BaseModel):
    """Request to repay an outstanding loan."""
    reserve: str
    amount: int = Field(ge=0, description="Reserve units sent as repayment")


class OwnershipTransferRequest(BaseModel):
    """Request to hand administration to another identity."""
    new_administrator: str

    @field_validator("new_administrator")
    @classmethod
    def strip_identity(cls, value: str) -> str:
        return value.strip()


class LedgerServiceConfig(BaseModel):
    """Configuration for the ledger service."""
    kafka_enabled: bool = Field(False)
    kafka_servers: str = Field("localhost:9092")
    producer_timeout_ms: int = Field(10000, description="Producer request timeout")
    topic_loan_events: str = Field("loan_events")
    topic_config_events: str = Field("ledger_config_events")
    topic_risk_alerts: str = Field("risk_alerts")

    # Publishing and monitoring
    publish_interval: float = Field(1.0, description="Seconds between event publication passes")
    expiry_check_interval: int = Field(300, description="Seconds between expired-loan scans")
    alert_on_expired_loans: bool = Field(True)
    event_history_limit: int = Field(10000, description="Events retained in memory")


CONFIG_EVENT_TYPES: List[LedgerEventType] = [
    LedgerEventType.INTEREST_RATE_SET,
    LedgerEventType.LOAN_RATIO_SET,
    LedgerEventType.OWNERSHIP_TRANSFERRED,
]
