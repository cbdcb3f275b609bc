import hashlib
import hmac
import logging
from contextlib import asynccontextmanager
from typing import Optional

import requests
import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .auth import CurrentUser, require_customer
from .chapa import ChapaClient, is_valid_tx_ref
from .config import Settings, configure_logging, get_settings
from .database import TransactionStore, create_driver
from .errors import AuthError, ChapaError, StoreError
from .models import (CheckoutRequest, CheckoutResponse, DirectChargeAuthorization,
                     DirectChargeRequest, MobilePaymentRequest, SettlementResponse,
                     TransactionPage)
from .payments import PaymentGateway
from .transactions import list_customer_transactions, record_payment, settle_payment

logger = logging.getLogger(__name__)

# Gateway failures: Chapa said no, or we never reached it
GATEWAY_ERRORS = (ChapaError, requests.RequestException)


def get_store(request: Request) -> TransactionStore:
    return request.app.state.store


def get_gateway(request: Request) -> PaymentGateway:
    return request.app.state.gateway


def gateway_failure(message: str, error: Exception) -> JSONResponse:
    return JSONResponse(status_code=502, content={"message": message, "error": str(error)})


# ══════════════════════════════════
# CUSTOMER ENDPOINTS
# ══════════════════════════════════

customer_router = APIRouter(prefix="/api/customer", tags=["Customer"])


@customer_router.get("/transactions", response_model=TransactionPage)
def get_customer_transactions(
    request: Request,
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    user: CurrentUser = Depends(require_customer),
    store: TransactionStore = Depends(get_store),
):
    # page/limit arrive as raw strings; junk falls back to 1 and 10
    settings: Settings = request.app.state.settings
    try:
        return list_customer_transactions(
            store, user.id, page, limit,
            max_limit=settings.transactions_max_limit,
        )
    except StoreError:
        logger.exception("Fetch transactions error")
        return JSONResponse(status_code=500, content={"message": "Failed to fetch transactions"})


# ══════════════════════════════════
# PAYMENT ENDPOINTS
# ══════════════════════════════════

payment_router = APIRouter(prefix="/api/payments", tags=["Payments"])


@payment_router.post("/initialize", response_model=CheckoutResponse, status_code=201)
def initialize_checkout(
    body: CheckoutRequest,
    user: CurrentUser = Depends(require_customer),
    store: TransactionStore = Depends(get_store),
    gateway: PaymentGateway = Depends(get_gateway),
):
    try:
        return record_payment(store, gateway, user.id, body)
    except GATEWAY_ERRORS as e:
        return gateway_failure("Payment initialization failed", e)
    except StoreError:
        logger.exception("Failed to record payment")
        return JSONResponse(status_code=500, content={"message": "Failed to record payment"})


@payment_router.post("/mobile/initialize")
def initialize_mobile_checkout(
    body: MobilePaymentRequest,
    user: CurrentUser = Depends(require_customer),
    gateway: PaymentGateway = Depends(get_gateway),
):
    try:
        return gateway.initialize_mobile_payment(body)
    except GATEWAY_ERRORS as e:
        return gateway_failure("Mobile payment initialization failed", e)


@payment_router.post("/direct-charge")
def direct_charge(
    body: DirectChargeRequest,
    user: CurrentUser = Depends(require_customer),
    gateway: PaymentGateway = Depends(get_gateway),
):
    try:
        return gateway.process_direct_charge(body)
    except GATEWAY_ERRORS as e:
        return gateway_failure("Direct charge failed", e)


@payment_router.post("/direct-charge/authorize")
def authorize_direct_charge(
    body: DirectChargeAuthorization,
    user: CurrentUser = Depends(require_customer),
    gateway: PaymentGateway = Depends(get_gateway),
):
    try:
        return gateway.authorize_direct_charge(body)
    except GATEWAY_ERRORS as e:
        return gateway_failure("Direct charge authorization failed", e)


def _settle(store: TransactionStore, gateway: PaymentGateway, tx_ref: str):
    if not is_valid_tx_ref(tx_ref):
        return JSONResponse(status_code=400, content={"message": "Invalid transaction reference"})
    try:
        result = settle_payment(store, gateway, tx_ref)
    except GATEWAY_ERRORS as e:
        return gateway_failure("Payment verification failed", e)
    except StoreError:
        logger.exception(f"Failed to settle payment {tx_ref}")
        return JSONResponse(status_code=500, content={"message": "Failed to update transaction"})
    if result is None:
        return JSONResponse(status_code=404, content={"message": "Transaction not found"})
    return result


@payment_router.get("/verify/{tx_ref}", response_model=SettlementResponse)
def verify_payment(
    tx_ref: str,
    store: TransactionStore = Depends(get_store),
    gateway: PaymentGateway = Depends(get_gateway),
):
    return _settle(store, gateway, tx_ref)


@payment_router.get("/callback", response_model=SettlementResponse)
def payment_callback(
    trx_ref: Optional[str] = Query(None),
    tx_ref: Optional[str] = Query(None),
    store: TransactionStore = Depends(get_store),
    gateway: PaymentGateway = Depends(get_gateway),
):
    # Chapa calls back with ?trx_ref=...&status=...
    reference = trx_ref or tx_ref
    if not reference:
        return JSONResponse(status_code=400, content={"message": "Missing transaction reference"})
    return _settle(store, gateway, reference)


def valid_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    if not signature:
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


@payment_router.post("/webhook", response_model=SettlementResponse)
async def chapa_webhook(
    request: Request,
    store: TransactionStore = Depends(get_store),
    gateway: PaymentGateway = Depends(get_gateway),
):
    body = await request.body()
    secret = request.app.state.settings.chapa_webhook_secret
    if secret and not valid_signature(secret, body, request.headers.get("x-chapa-signature")):
        logger.warning("Rejected Chapa webhook with a bad signature")
        return JSONResponse(status_code=401, content={"message": "Invalid signature"})

    try:
        event = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"message": "Invalid webhook payload"})
    reference = (event.get("tx_ref") or event.get("trx_ref")) if isinstance(event, dict) else None
    if not reference:
        return JSONResponse(status_code=400, content={"message": "Missing transaction reference"})

    # The event only says which payment moved; the outcome comes from verify
    return await run_in_threadpool(_settle, store, gateway, reference)


# ══════════════════════════════════
# APPLICATION
# ══════════════════════════════════

def create_app(
    settings: Optional[Settings] = None,
    store: Optional[TransactionStore] = None,
    gateway: Optional[PaymentGateway] = None,
) -> FastAPI:
    """
    Build the API. Everything the handlers need is created here once
    and hung off app.state; pass store/gateway to swap them out.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    owns_store = store is None
    if store is None:
        store = TransactionStore(create_driver(settings), database=settings.neo4j_database)

    client = None
    if gateway is None:
        client = ChapaClient(
            settings.chapa_secret_key,
            base_url=settings.chapa_base_url,
            timeout=settings.chapa_timeout,
        )
        gateway = PaymentGateway(client, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if owns_store:
            store.create_indexes()
        logger.info("Khanut API started")
        yield
        if owns_store:
            store.close()
        if client is not None:
            client.close()
        logger.info("Khanut API stopped")

    app = FastAPI(title="Khanut API", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.gateway = gateway

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(customer_router)
    app.include_router(payment_router)
    return app


def run():
    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
