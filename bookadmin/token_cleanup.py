"""
CLI entrypoint for the authentication token cleanup job. Run from cron, e.g.:

  python -m bookadmin.token_cleanup

Or hourly: 0 * * * * cd /path/to/bookadmin && .venv/bin/python -m bookadmin.token_cleanup
"""

import logging
import sys

from bookadmin.core.config import get_settings
from bookadmin.core.database import SessionLocal
from bookadmin.services.auth_tokens import purge_spent_tokens

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main() -> int:
    """Delete used and expired password-reset, account-setup and email-verification tokens."""
    settings = get_settings()
    db = SessionLocal()
    try:
        deleted = purge_spent_tokens(db, settings)
        logger.info("Token cleanup completed: tokens_deleted=%s", deleted)
        return 0
    except Exception as e:
        logger.exception("Token cleanup failed: %s", e)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
