from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import datetime, timedelta
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _bootstrap_app():
    from myzo import create_app

    app = create_app()
    app.app_context().push()
    return app


def build_report(*, stale_hours: int, now: datetime | None = None) -> dict:
    from myzo.models import Order, OrderStatus, PaymentStatus

    now = now or datetime.utcnow()
    cutoff = now - timedelta(hours=max(1, int(stale_hours)))

    review_rows = (
        Order.query.filter(
            Order.payment_status == PaymentStatus.PAID,
            Order.stock_review_required.is_(True),
        )
        .order_by(Order.paid_at.asc())
        .all()
    )
    stale_rows = (
        Order.query.filter(
            Order.status == OrderStatus.PLACED,
            Order.payment_status == PaymentStatus.PENDING,
            Order.created_at < cutoff,
        )
        .order_by(Order.created_at.asc())
        .all()
    )
    return {
        "generated_at": now.isoformat(),
        "stale_cutoff": cutoff.isoformat(),
        "stock_review_count": len(review_rows),
        "stock_review": [
            {"order_id": int(o.id), "order_number": o.order_number, "paid_at": o.paid_at.isoformat() if o.paid_at else None}
            for o in review_rows
        ],
        "stale_pending_count": len(stale_rows),
        "stale_pending": [
            {
                "order_id": int(o.id),
                "order_number": o.order_number,
                "payment_method": o.payment_method,
                "payment_reference": o.payment_reference,
                "created_at": o.created_at.isoformat() if o.created_at else None,
            }
            for o in stale_rows
        ],
    }


def main():
    parser = argparse.ArgumentParser(description="Report paid orders awaiting stock review and stale pending checkouts.")
    parser.add_argument("--stale-hours", type=int, default=24, help="Pending orders older than this are reported.")
    args = parser.parse_args()

    _bootstrap_app()
    report = build_report(stale_hours=args.stale_hours)
    print(json.dumps(report, indent=2))
    needs_attention = report["stock_review_count"] + report["stale_pending_count"]
    return 0 if needs_attention == 0 else 2


if __name__ == "__main__":
    os.environ.setdefault("FLASK_APP", "main.py")
    sys.exit(main())
