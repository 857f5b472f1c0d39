# scripts/seed_business.py
"""
Create (or show) a business bound to a Twilio number, with AI settings.

  python scripts/seed_business.py "Acme Plumbing" +18145551234 --services "leak repair,drain cleaning"
"""
import argparse
import sys
from pathlib import Path
sys.path.append(str(Path(__file__).resolve().parents[1]))

from sqlmodel import Session, select

from app.db import engine, create_db_and_tables
from app.models import AISettings, Business
from app.utils.phone import to_e164


def main() -> None:
    p = argparse.ArgumentParser()
    p.add_argument("name")
    p.add_argument("twilio_phone")
    p.add_argument("--assistant", default="BookFox")
    p.add_argument("--services", default="", help="comma separated")
    p.add_argument("--pricing-notes", default=None)
    p.add_argument("--max-messages", type=int, default=10)
    p.add_argument("--delay", type=int, default=30)
    p.add_argument("--no-auto-respond", action="store_true")
    args = p.parse_args()

    phone = to_e164(args.twilio_phone)
    if not phone:
        sys.exit(f"invalid phone: {args.twilio_phone!r}")

    create_db_and_tables()
    with Session(engine) as s:
        b = s.exec(select(Business).where(Business.twilio_phone == phone)).first()
        if b:
            print("✅ business exists:", b.id, b.name, b.twilio_phone)
            return

        b = Business(name=args.name.strip(), twilio_phone=phone)
        s.add(b)
        s.flush()
        s.add(AISettings(
            business_id=b.id,
            assistant_name=args.assistant,
            auto_respond=not args.no_auto_respond,
            response_delay_seconds=args.delay,
            max_messages_before_human=args.max_messages,
            services_offered=[x.strip() for x in args.services.split(",") if x.strip()],
            pricing_notes=args.pricing_notes,
        ))
        s.commit()
        print("✅ created business:", b.id, b.name, b.twilio_phone)


if __name__ == "__main__":
    main()
