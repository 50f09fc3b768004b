#!/usr/bin/env python3
import argparse
import logging

from app.core.clock import system_clock
from app.db.session import SessionLocal
from app.services.attempt_service import expire_overdue_attempts


logger = logging.getLogger('expire_attempts')


def main() -> int:
    parser = argparse.ArgumentParser(description='Force-submit every in-progress attempt whose deadline has passed.')
    parser.add_argument('--dry-run', action='store_true', help='Grade and report, then roll back instead of committing.')
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    db = SessionLocal()
    try:
        expired_ids = expire_overdue_attempts(db, clock=system_clock)
        if args.dry_run:
            db.rollback()
        else:
            db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    for attempt_id in expired_ids:
        print(attempt_id)
    logger.info('%s %s overdue attempts', 'Found' if args.dry_run else 'Expired', len(expired_ids))
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
