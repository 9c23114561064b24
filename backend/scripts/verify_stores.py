import sys, pathlib, asyncio
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from sqlalchemy import func, select, text

from serviceability.core.db import SessionLocal, engine
from serviceability.core.redis_client import close_redis_client, ping_redis
from serviceability.models.merchant import Merchant


async def main():
    async with SessionLocal() as s:
        one = await s.execute(text("SELECT 1"))
        print("db-ping:", one.scalar())
        print("merchants:", await s.scalar(select(func.count()).select_from(Merchant)))
        print("max-id:", await s.scalar(select(func.max(Merchant.id))))

    print("redis-ping:", await ping_redis())
    await close_redis_client()
    await engine.dispose()

asyncio.run(main())
