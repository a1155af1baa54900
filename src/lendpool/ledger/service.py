"""
Ledger service: owns the lending ledger, publishes its events and reports
expired loans.
"""

import asyncio
import json
from typing import Optional, Dict, Any, List
from datetime import datetime

from aiokafka import AIOKafkaProducer

from ..logging import get_logger, trace_context
from .assets import AssetRegistry, NativeBank
from .clock import Clock
from .manager import LendingLedger
from .models import CONFIG_EVENT_TYPES, LedgerEvent, LedgerServiceConfig, LoanView

logger = get_logger(__name__)


class LedgerService:
    """Service wrapper that connects the ledger to Kafka."""

    def __init__(
        self,
        config: Dict[str, Any],
        ledger: Optional[LendingLedger] = None,
        assets: Optional[AssetRegistry] = None,
        native: Optional[NativeBank] = None,
        clock: Optional[Clock] = None,
    ):
        self.config = LedgerServiceConfig(**config.get('service_config', {}))

        if ledger is None:
            ledger_config = config.get('ledger_config', {})
            ledger = LendingLedger(
                administrator=ledger_config.get('administrator', 'admin'),
                interest_rate=ledger_config.get('interest_rate', 500),
                assets=assets,
                native=native,
                clock=clock,
                custody_account=ledger_config.get('custody_account', 'lendpool-custody'),
                event_history_limit=self.config.event_history_limit,
            )
        self.ledger = ledger

        # Kafka client
        self.producer: Optional[AIOKafkaProducer] = None

        # Service state
        self.running = False
        self.started_at: Optional[datetime] = None
        self.last_published_sequence = 0
        self.last_expiry_check: Optional[datetime] = None
        self.expired_loans: List[LoanView] = []

    async def start(self):
        """Start the ledger service."""
        logger.info("Starting Ledger service...")

        if self.config.kafka_enabled:
            self.producer = AIOKafkaProducer(
                bootstrap_servers=self.config.kafka_servers,
                request_timeout_ms=self.config.producer_timeout_ms,
                value_serializer=lambda v: json.dumps(v, default=str).encode('utf-8')
            )
            await self.producer.start()

        self.running = True
        self.started_at = datetime.utcnow()

        await asyncio.gather(
            self.event_publishing_loop(),
            self.expiry_monitoring_loop()
        )

    async def stop(self):
        """Stop the ledger service."""
        logger.info("Stopping Ledger service...")
        self.running = False

        # Flush anything recorded since the last pass
        if self.producer:
            await self.publish_pending_events()
            await self.producer.stop()
            self.producer = None

    async def event_publishing_loop(self):
        """Publish ledger events as they are recorded."""
        while self.running:
            try:
                await self.publish_pending_events()
            except Exception as e:
                logger.error(f"Error publishing ledger events: {e}")

            await asyncio.sleep(self.config.publish_interval)

    async def expiry_monitoring_loop(self):
        """Report loans that passed their period without repayment or claim."""
        while self.running:
            try:
                await self.check_expired_loans()
            except Exception as e:
                logger.error(f"Error in expiry monitoring: {e}")

            await asyncio.sleep(self.config.expiry_check_interval)

    async def publish_pending_events(self) -> int:
        """Publish every event newer than the last published one."""
        events = self.ledger.events_since(self.last_published_sequence)
        if not events:
            return 0

        for event in events:
            if self.producer:
                await self.publish_event(event)
            self.last_published_sequence = event.sequence

        logger.debug(f"Published {len(events)} ledger events, "
                     f"last sequence {self.last_published_sequence}")
        return len(events)

    async def publish_event(self, event: LedgerEvent):
        """Publish a single ledger event to its topic."""
        if event.event_type in CONFIG_EVENT_TYPES:
            topic = self.config.topic_config_events
        else:
            topic = self.config.topic_loan_events

        with trace_context(f"ledger-{event.sequence}", event_type=event.event_type.value):
            await self.producer.send_and_wait(
                topic,
                value={
                    'timestamp': datetime.utcnow().isoformat(),
                    'event': event.model_dump(mode='json'),
                    'interest_rate': self.ledger.interest_rate
                }
            )

    async def check_expired_loans(self) -> List[LoanView]:
        """Refresh the expired-loan list and alert on it."""
        self.expired_loans = self.ledger.expired_loans()
        self.last_expiry_check = datetime.utcnow()

        if self.expired_loans:
            logger.warning(f"{len(self.expired_loans)} expired loans awaiting collateral claim")
            if self.config.alert_on_expired_loans and self.producer:
                await self.publish_expiry_alert(self.expired_loans)

        return self.expired_loans

    async def publish_expiry_alert(self, expired: List[LoanView]):
        """Publish alert listing expired loans."""
        await self.producer.send_and_wait(
            self.config.topic_risk_alerts,
            value={
                'timestamp': datetime.utcnow().isoformat(),
                'alert_type': 'LOANS_AWAITING_CLAIM',
                'severity': 'WARNING',
                'message': f"{len(expired)} loans expired without repayment",
                'loans': [
                    {
                        'borrower': view.borrower,
                        'reserve': view.loan.reserve,
                        'collateral': view.loan.collateral,
                        'principal': view.loan.principal,
                        'expired_at': view.expires_at
                    }
                    for view in expired
                ],
                'outstanding_collateral': self.ledger.outstanding_collateral()
            }
        )

    def get_current_state(self) -> Dict[str, Any]:
        """Get current ledger and publishing state."""
        return {
            'ledger_metrics': self.ledger.get_ledger_metrics(),
            'kafka_enabled': self.config.kafka_enabled,
            'last_published_sequence': self.last_published_sequence,
            'expired_loans': len(self.expired_loans),
            'last_expiry_check': self.last_expiry_check.isoformat() if self.last_expiry_check else None,
            'started_at': self.started_at.isoformat() if self.started_at else None
        }
