import asyncio
import logging

from app.db import db


logger = logging.getLogger("pulseboard-init-db-script")


async def _run() -> int:
    await db.create_pool()
    if db.pool is None:
        logger.error("INIT_DB_ABORT reason=no_db_pool")
        return 1

    try:
        async with db.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT table_name
                FROM information_schema.tables
                WHERE table_schema = 'public'
                  AND table_name IN ('users', 'projects', 'habits')
                """
            )
            tables = sorted(row["table_name"] for row in rows)
            logger.info("INIT_DB_SUMMARY tables=%s", ",".join(tables))
            return 0 if len(tables) == 3 else 1
    finally:
        await db.close_pool()


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    exit_code = asyncio.run(_run())
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
