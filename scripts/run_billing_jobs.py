"""Run the billing sweeps once (for cron / manual runs).

Usage:
    python scripts/run_billing_jobs.py             # all jobs
    python scripts/run_billing_jobs.py --renewals  # only scheduled renewals
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from coursepay.core.logging_config import get_logger  # noqa: E402
from coursepay.db.deps import AsyncSessionLocal  # noqa: E402
from coursepay.services.payments.billing_jobs import run_billing_jobs_once  # noqa: E402
from coursepay.services.payments.gateway_set import build_gateway_set  # noqa: E402
from coursepay.services.payments.payment_service import PaymentService  # noqa: E402
from coursepay.services.payments.subscription_service import SubscriptionService  # noqa: E402

logger = get_logger("scripts.run_billing_jobs")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run billing sweeps once")
    parser.add_argument("--renewals", action="store_true", help="renew due subscriptions")
    parser.add_argument("--expire", action="store_true", help="expire lapsed non-renewing subscriptions")
    parser.add_argument("--stale-payments", action="store_true", help="fail pending payments past expires_at")
    args = parser.parse_args(argv)
    if not (args.renewals or args.expire or args.stale_payments):
        args.renewals = args.expire = args.stale_payments = True
    return args


async def main(argv=None) -> int:
    args = parse_args(argv)
    async with AsyncSessionLocal() as db:
        gateways = await build_gateway_set(db)
        service = SubscriptionService(PaymentService(gateways))
        summary = await run_billing_jobs_once(
            service,
            renewals=args.renewals,
            expire=args.expire,
            stale_payments=args.stale_payments,
            db=db,
        )

    print(f"Billing jobs: {summary}")
    failed = [name for name, v in summary.items() if isinstance(v, dict) and "error" in v]
    if failed:
        logger.error(f"Billing jobs failed: {failed}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
