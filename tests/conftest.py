import uuid
from datetime import datetime, timezone

import jwt
import pytest
from fastapi.testclient import TestClient

from khanut.config import Settings
from khanut.database import format_timestamp, to_record
from khanut.errors import StoreError
from khanut.main import create_app
from khanut.models import Transaction, TransactionCreate
from khanut.payments import PaymentGateway

JWT_SECRET = "test-secret-key-for-khanut-api-0123456789"
CUSTOMER_ID = "67ebdd048a24e306093ac663"
OTHER_CUSTOMER_ID = "67ebdd048a24e306093ac999"
BUSINESS_ID = "67ebe05157f9c08221cfd60f"


class FakeTransactionStore:
    """In-memory stand-in for TransactionStore."""

    def __init__(self):
        self.records = []
        self.fail = False
        self.calls = []

    def _check(self, name):
        self.calls.append(name)
        if self.fail:
            raise StoreError("store is down")

    def insert(self, tx):
        return self.insert_many([tx])[0]

    def insert_many(self, txs):
        self._check("insert_many")
        saved = []
        for tx in txs:
            record = to_record(tx)
            record["id"] = str(uuid.uuid4())
            self.records.append(record)
            saved.append(Transaction.model_validate(record))
        return saved

    def _for_customer(self, customer_id):
        rows = [r for r in self.records if r["customerId"] == customer_id]
        return sorted(rows, key=lambda r: r["createdAt"], reverse=True)

    def find_by_customer(self, customer_id, skip, limit):
        self._check("find_by_customer")
        rows = self._for_customer(customer_id)[skip:skip + limit]
        return [Transaction.model_validate(r) for r in rows]

    def count_by_customer(self, customer_id):
        self._check("count_by_customer")
        return len(self._for_customer(customer_id))

    def find_by_tx_ref(self, tx_ref):
        self._check("find_by_tx_ref")
        for r in self.records:
            if r.get("txRef") == tx_ref:
                return Transaction.model_validate(r)
        return None

    def update_status(self, tx_ref, status):
        self._check("update_status")
        for r in self.records:
            if r.get("txRef") == tx_ref:
                r["status"] = status.value
                r["updatedAt"] = format_timestamp(datetime.now(timezone.utc))
                return Transaction.model_validate(r)
        return None


class FakeChapaClient:
    """Records what the gateway sends and answers like Chapa would."""

    def __init__(self):
        self.calls = []
        self.error = None
        self.verify_status = "success"
        self.next_ref = 0

    def _call(self, name, payload):
        self.calls.append((name, payload))
        if self.error is not None:
            raise self.error

    def initialize(self, payload):
        self._call("initialize", payload)
        return {
            "message": "Hosted Link",
            "status": "success",
            "data": {"checkout_url": f"https://checkout.chapa.co/checkout/payment/{payload['tx_ref']}"},
        }

    def verify(self, tx_ref):
        self._call("verify", tx_ref)
        return {
            "message": "Payment details",
            "status": "success",
            "data": {"tx_ref": tx_ref, "status": self.verify_status, "amount": "100"},
        }

    def mobile_initialize(self, payload):
        self._call("mobile_initialize", payload)
        return {"message": "Charge initiated", "status": "success", "data": {"tx_ref": payload["tx_ref"]}}

    def direct_charge(self, payload):
        self._call("direct_charge", payload)
        return {"message": "Charge initiated", "status": "success", "data": {"auth_type": "ussd"}}

    def authorize_direct_charge(self, payload):
        self._call("authorize_direct_charge", payload)
        return {"message": "Payment is successfully completed", "status": "success", "data": None}

    def gen_tx_ref(self, remove_prefix=False, prefix="TX", size=15):
        self._call("gen_tx_ref", {"remove_prefix": remove_prefix, "prefix": prefix, "size": size})
        self.next_ref += 1
        reference = str(self.next_ref).zfill(size)
        return reference if remove_prefix else f"{prefix}-{reference}"


def make_transaction(created_at, customer_id=CUSTOMER_ID, **overrides) -> TransactionCreate:
    fields = dict(
        customer_id=customer_id,
        business_id=BUSINESS_ID,
        amount=100.0,
        method="telebirr",
        created_at=created_at,
    )
    fields.update(overrides)
    return TransactionCreate(**fields)


def make_token(user_id=CUSTOMER_ID, role="customer", secret=JWT_SECRET) -> str:
    return jwt.encode({"id": user_id, "role": role}, secret, algorithm="HS256")


def auth_header(**kwargs) -> dict:
    return {"Authorization": f"Bearer {make_token(**kwargs)}"}


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        jwt_secret=JWT_SECRET,
        chapa_secret_key="CHASECK_TEST-xxxxxxxx",
        chapa_callback_url="https://api.khanut.test/api/payments/callback",
        chapa_return_url="https://khanut.test/payment/success",
        chapa_webhook_secret="",
    )


@pytest.fixture
def store():
    return FakeTransactionStore()


@pytest.fixture
def chapa_client():
    return FakeChapaClient()


@pytest.fixture
def gateway(chapa_client, settings):
    return PaymentGateway(chapa_client, settings)


@pytest.fixture
def seeded_store(store):
    # Same three records the seed script writes
    store.insert_many([
        make_transaction(datetime(2024, 12, 20, tzinfo=timezone.utc), description="Black Coffee"),
        make_transaction(datetime(2025, 1, 15, tzinfo=timezone.utc), description="Macchiato"),
        make_transaction(datetime(2025, 3, 1, tzinfo=timezone.utc), description="Vanilla Cream"),
    ])
    return store


@pytest.fixture
def app(settings, store, gateway):
    return create_app(settings, store=store, gateway=gateway)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
