"""Store construction and request-scoped access

The payment ledger, invoice ledger, loyalty engine and job store are built
once per application by `create_app` and handed to routes through
FastAPI dependencies.
"""

import logging
from dataclasses import dataclass

from fastapi import Request

from conveysafe.config import Settings
from conveysafe.services.checkout import CheckoutService
from conveysafe.services.invoices import InvoiceLedger
from conveysafe.services.jobs import JobStore
from conveysafe.services.loyalty import LoyaltyEngine
from conveysafe.services.payment_ledger import PaymentLedger
from conveysafe.utils.clock import SystemClock
from conveysafe.utils.ids import IdGenerator, build_id_generator

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    clock: SystemClock
    ledger: PaymentLedger
    invoices: InvoiceLedger
    loyalty: LoyaltyEngine
    jobs: JobStore
    checkout: CheckoutService


def build_container(
    settings: Settings,
    id_generator: IdGenerator | None = None,
    clock: SystemClock | None = None,
) -> ServiceContainer:
    """Wire fresh stores for one application instance"""
    ids = id_generator or build_id_generator(settings.id_strategy)
    clock = clock or SystemClock()

    ledger = PaymentLedger(ids)
    invoices = InvoiceLedger(ids)
    loyalty = LoyaltyEngine()
    jobs = JobStore(ids, clock, contact_domain=settings.contact_domain)
    checkout = CheckoutService(
        ledger,
        invoices,
        loyalty,
        clock,
        max_service_fee_rate=settings.max_service_fee_rate,
        default_line_description=settings.default_line_description,
        default_service_fee_description=settings.default_service_fee_description,
    )
    logger.info("Service stores initialized", extra={"id_strategy": settings.id_strategy})
    return ServiceContainer(
        settings=settings,
        clock=clock,
        ledger=ledger,
        invoices=invoices,
        loyalty=loyalty,
        jobs=jobs,
        checkout=checkout,
    )


def get_container(request: Request) -> ServiceContainer:
    """Dependency to get the application's stores"""
    return request.app.state.container
