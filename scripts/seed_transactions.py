import argparse
import random
from datetime import datetime, timedelta, timezone

from faker import Faker

from khanut.config import get_settings
from khanut.database import TransactionStore, create_driver
from khanut.models import TransactionCreate, TransactionStatus

fake = Faker()

# Fixture customer/business pair the frontend demo logs in as
CUSTOMER_ID = "67ebdd048a24e306093ac663"
BUSINESS_ID = "67ebe05157f9c08221cfd60f"

PAYMENT_METHODS = ["telebirr", "cbe birr", "amole", "mpesa", "awash birr", "chapa"]

MENU_ITEMS = [
    "Black Coffee", "Macchiato", "Vanilla Cream", "Spris", "Shai",
    "Buna Bekela", "Avocado Juice", "Ful", "Firfir", "Tibs",
]


def sample_transactions():
    """The three records every environment starts with."""
    return [
        TransactionCreate(
            customer_id=CUSTOMER_ID,
            business_id=BUSINESS_ID,
            amount=120.5,
            method="telebirr",
            status=TransactionStatus.COMPLETED,
            description="Black Coffee",
            created_at=datetime(2024, 12, 20, tzinfo=timezone.utc),
        ),
        TransactionCreate(
            customer_id=CUSTOMER_ID,
            business_id=BUSINESS_ID,
            amount=250,
            method="cbe birr",
            status=TransactionStatus.COMPLETED,
            description="Macchiato",
            created_at=datetime(2025, 1, 15, tzinfo=timezone.utc),
        ),
        TransactionCreate(
            customer_id=CUSTOMER_ID,
            business_id=BUSINESS_ID,
            amount=75,
            method="amole",
            status=TransactionStatus.PENDING,
            description="Vanilla Cream",
            created_at=datetime(2025, 3, 1, tzinfo=timezone.utc),
        ),
    ]


def fake_transactions(total, customer_id=CUSTOMER_ID, business_id=BUSINESS_ID):
    """
    Extra history for the same customer so pagination has
    something to page through. Mostly completed, a few stuck
    pending or failed.
    """
    start = datetime.now(timezone.utc) - timedelta(days=365)
    txs = []
    for _ in range(total):
        created = start + timedelta(seconds=random.randint(0, 365 * 24 * 3600))
        roll = random.random()
        status = (TransactionStatus.FAILED if roll < 0.05
                  else TransactionStatus.PENDING if roll < 0.15
                  else TransactionStatus.COMPLETED)
        txs.append(TransactionCreate(
            customer_id=customer_id,
            business_id=business_id,
            amount=round(random.uniform(20, 2500), 2),
            method=random.choice(PAYMENT_METHODS),
            status=status,
            description=random.choice(MENU_ITEMS),
            tx_ref=f"TX-{fake.bothify('??##??##??##???').upper()}",
            timestamp=created,
            created_at=created,
        ))
    return txs


def main():
    parser = argparse.ArgumentParser(description="Seed sample Khanut transactions")
    parser.add_argument("--fake", type=int, default=0,
                        help="also insert this many random transactions")
    args = parser.parse_args()

    settings = get_settings()
    store = TransactionStore(create_driver(settings), database=settings.neo4j_database)
    try:
        store.create_indexes()
        saved = store.insert_many(sample_transactions())
        print(f"  ✓ {len(saved)} sample transactions added")

        if args.fake:
            batch = fake_transactions(args.fake)
            # Batches of 1000 for speed
            for i in range(0, len(batch), 1000):
                store.insert_many(batch[i:i + 1000])
            print(f"  ✓ {len(batch)} fake transactions added")
    finally:
        store.close()


if __name__ == "__main__":
    main()
