"""
Recalculate cached loyalty balances from the ledger

Overwrites users.loyalty_points with sum(loyalty_transactions.points)
for every user and reports the ones that drifted.
Safe to run multiple times - a second run reports no drift.
"""
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger

from src.database.engine import get_session_maker, dispose_engine
from src.services.loyalty_service import LoyaltyService


async def recalculate_balances():
    """Repair balance cache for all users"""

    logger.info("🔍 Recalculating loyalty balances from ledger...")

    session_maker = get_session_maker()
    async with session_maker() as session:
        drifted = await LoyaltyService.recalculate_all(session)

    if not drifted:
        logger.info("✅ All balances match the ledger!")
        return

    for user_id, drift in drifted.items():
        logger.warning(f"⚠️  User {user_id}: drift {drift:+d} corrected")

    logger.info(f"🎉 Corrected {len(drifted)} balances")


async def main():
    try:
        await recalculate_balances()
    finally:
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
