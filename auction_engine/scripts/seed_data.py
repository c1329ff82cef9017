"""
Seed script to populate database with sample listings and accounts

Usage:
    python -m auction_engine.scripts.seed_data
"""
import asyncio
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import select

from auction_engine.core.database import dispose_engine, get_session_factory, init_db, utcnow
from auction_engine.models import Account, Listing, ListingStatus

SELLER_ID = 1

ACCOUNTS = {
    1: Decimal("0"),
    2: Decimal("5000"),
    3: Decimal("5000"),
    4: Decimal("250"),
}


async def create_sample_accounts(db):
    """Create bidder and seller accounts"""
    for user_id, balance in ACCOUNTS.items():
        existing = await db.get(Account, user_id)
        if existing:
            print(f"Account {user_id} already exists, skipping...")
            continue

        db.add(Account(user_id=user_id, balance=balance, pending_balance=Decimal("0")))
        print(f"Created account {user_id} with balance {balance}")

    await db.commit()


async def create_sample_listings(db):
    """Create listings ending at different times"""
    now = utcnow()

    listings_data = [
        {
            "title": "Vintage Camera",
            "starting_price": Decimal("100.00"),
            "increment_amount": Decimal("5.00"),
            "buy_now_price": Decimal("400.00"),
            "end_at": now + timedelta(minutes=10),
        },
        {
            "title": "Mechanical Keyboard",
            "starting_price": Decimal("50.00"),
            "increment_amount": Decimal("2.50"),
            "buy_now_price": None,
            "end_at": now + timedelta(hours=2),
        },
        {
            "title": "Signed Vinyl Record",
            "starting_price": Decimal("20.00"),
            "increment_amount": Decimal("1.00"),
            "buy_now_price": Decimal("150.00"),
            "end_at": now + timedelta(minutes=1),
        },
    ]

    for data in listings_data:
        result = await db.execute(select(Listing).where(Listing.title == data["title"]))
        if result.scalar_one_or_none():
            print(f"Listing {data['title']!r} already exists, skipping...")
            continue

        listing = Listing(
            seller_id=SELLER_ID,
            current_price=data["starting_price"],
            status=ListingStatus.ACTIVE,
            total_bids=0,
            unique_bidder_count=0,
            **data,
        )
        db.add(listing)
        print(f"Created listing: {listing.title} (ends {listing.end_at:%H:%M:%S} UTC)")

    await db.commit()


async def main():
    print("🌱 Seeding database...")
    await init_db()

    async with get_session_factory()() as db:
        await create_sample_accounts(db)
        await create_sample_listings(db)

    await dispose_engine()
    print("✅ Seeding complete")


if __name__ == "__main__":
    asyncio.run(main())
