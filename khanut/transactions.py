import logging
import math
import re
from concurrent import futures
from typing import Any, Optional, Union

from .database import TransactionStore
from .models import (CheckoutRequest, CheckoutResponse, Pagination,
                     PaymentRequest, SettlementResponse, TransactionCreate,
                     TransactionPage, TransactionStatus)
from .payments import PaymentGateway

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_INT64 = 2 ** 63 - 1

# Leading integer of a query value, the way "3abc" still reads as 3
LEADING_INT = re.compile(r"^\s*([+-]?\d+)")

# Chapa verification status -> our status; anything else stays pending
PROVIDER_STATUS = {
    "success": TransactionStatus.COMPLETED,
    "failed": TransactionStatus.FAILED,
}


def parse_positive_int(value: Union[str, int, None], default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        number = value
    else:
        match = LEADING_INT.match(str(value))
        if not match:
            return default
        number = int(match.group(1))
    return number if number >= 1 else default


def build_pagination(total_items: int, page: int, limit: int) -> Pagination:
    total_pages = math.ceil(total_items / limit)
    return Pagination(
        total_items=total_items,
        current_page=page,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
    )


def list_customer_transactions(
    store: TransactionStore,
    customer_id: str,
    page: Union[str, int, None] = None,
    limit: Union[str, int, None] = None,
    max_limit: Optional[int] = None,
) -> TransactionPage:
    """
    One page of a customer's transactions, newest first.

    customer_id must come from the authenticated caller, never from the
    request. The page and the total count are fetched at the same time
    and joined before the result is built.
    """
    page = parse_positive_int(page, DEFAULT_PAGE)
    limit = parse_positive_int(limit, DEFAULT_LIMIT)
    if max_limit is not None:
        limit = min(limit, max_limit)
    # Neo4j integers are 64-bit; a page that far out is empty anyway
    limit = min(limit, MAX_INT64)
    skip = min((page - 1) * limit, MAX_INT64)

    with futures.ThreadPoolExecutor(max_workers=2) as executor:
        page_future = executor.submit(store.find_by_customer, customer_id, skip, limit)
        count_future = executor.submit(store.count_by_customer, customer_id)
        transactions = page_future.result()
        total = count_future.result()

    return TransactionPage(
        transactions=transactions,
        pagination=build_pagination(total, page, limit),
    )


def record_payment(
    store: TransactionStore,
    gateway: PaymentGateway,
    customer_id: str,
    request: CheckoutRequest,
) -> CheckoutResponse:
    """
    Open a Chapa checkout and keep a pending transaction for it.

    The record is validated before Chapa is called, so an amount we
    would refuse to store never opens a checkout.
    """
    payment = PaymentRequest(**request.model_dump(include=set(PaymentRequest.model_fields)))
    if payment.tx_ref is None:
        payment.tx_ref = gateway.generate_tx_ref()

    pending = TransactionCreate(
        customer_id=customer_id,
        business_id=request.business_id,
        amount=float(request.amount),
        method=request.method,
        description=request.description,
        currency=request.currency,
        tx_ref=payment.tx_ref,
    )
    response = gateway.initialize_payment(payment)
    transaction = store.insert(pending)

    data = response.get("data") or {}
    return CheckoutResponse(
        checkout_url=data.get("checkout_url"),
        tx_ref=payment.tx_ref,
        transaction=transaction,
    )


def settle_payment(
    store: TransactionStore,
    gateway: PaymentGateway,
    tx_ref: str,
) -> Optional[SettlementResponse]:
    """
    Ask Chapa how a payment ended and record the outcome.

    Returns None when no Khanut transaction carries tx_ref; Chapa is
    not asked about references we never issued.
    """
    if store.find_by_tx_ref(tx_ref) is None:
        logger.warning(f"No transaction for tx_ref={tx_ref}")
        return None

    verification: dict[str, Any] = gateway.verify_payment(tx_ref)
    data = verification.get("data") or {}
    provider_status = data.get("status")
    status = PROVIDER_STATUS.get(str(provider_status).lower()) if provider_status else None

    if status is None:
        logger.info(f"Payment {tx_ref} not settled yet (provider status: {provider_status})")
        return SettlementResponse(
            tx_ref=tx_ref,
            status=None,
            provider_status=provider_status,
            transaction=store.find_by_tx_ref(tx_ref),
        )

    transaction = store.update_status(tx_ref, status)
    if transaction is None:
        logger.warning(f"Verified payment {tx_ref} has no matching transaction")
        return None
    return SettlementResponse(
        tx_ref=tx_ref,
        status=status,
        provider_status=provider_status,
        transaction=transaction,
    )
