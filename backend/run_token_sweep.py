"""Delete expired refresh tokens once; meant to be run by cron or a CronJob."""

import logging

from chatbridge.core.database import SessionLocal
from chatbridge.services.token_service import token_service, utc_now


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    db = SessionLocal()
    try:
        removed = token_service.sweep_expired(db, before=utc_now())
    finally:
        db.close()
    logging.getLogger(__name__).info("Token sweep finished, %d token(s) removed", removed)


if __name__ == "__main__":
    main()
