"""
Riga di comando, senza interfaccia web.

  python cli.py har export.har [--out DIR]   → reservations_by_listing.json
  python cli.py arrivals                      → finestra arrivi in JSON
"""

import argparse
import json
import logging
import sys
from collections import defaultdict
from pathlib import Path

from config import GITES, SHEET_NAMES
from core.errors import BulkExportError
from core.fetcher import FeedFetcher
from core.fusion import clean_comment, fuse_personal_notes, fuse_platform_bookings
from core.normalizer import in_window, normalize, relevance_window
from parsers.har import extract_records

logger = logging.getLogger(__name__)

OUTPUT_NAME = "reservations_by_listing.json"


def setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


def har_to_listing_json(raw) -> dict:
    """Prenotazioni fuse raggruppate per nome del foglio e ordinate per arrivo."""
    records = extract_records(raw)
    fused = fuse_platform_bookings(records.calendar, records.payouts) + fuse_personal_notes(records.notes)

    by_listing = defaultdict(list)
    for r in fused:
        sheet = SHEET_NAMES.get(r.property_id)
        if sheet is None:
            continue
        by_listing[sheet].append({
            "type": r.type.value,
            "checkIn": r.check_in.isoformat() if r.check_in else None,
            "checkOut": r.check_out.isoformat() if r.check_out else None,
            "nights": r.nights or None,
            "name": r.guest_name,
            "payout": r.payout_amount,
            "comment": clean_comment(r.comment),
        })
    for items in by_listing.values():
        items.sort(key=lambda x: x["checkIn"] or "")
    return dict(by_listing)


def cmd_har(args) -> int:
    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)
    try:
        result = har_to_listing_json(Path(args.har).read_bytes())
    except BulkExportError as e:
        logger.error("%s", e)
        return 1
    out_file = out_dir / OUTPUT_NAME
    out_file.write_text(json.dumps(result, indent=2, ensure_ascii=False), encoding="utf-8")
    for sheet, items in sorted(result.items()):
        logger.info("%s: %d prenotazioni", sheet, len(items))
    logger.info("Scritto %s", out_file)
    return 0


def cmd_arrivals(args) -> int:
    report = FeedFetcher(GITES).fetch_all()
    window = relevance_window()
    reservations = [iv for iv in normalize(report.intervals) if in_window(iv, window)]
    json.dump({
        "reservations": [{
            "giteId": iv.property_id,
            "source": iv.source,
            "start": iv.start.isoformat(),
            "end": iv.end.isoformat(),
            "summary": iv.summary,
        } for iv in sorted(reservations, key=lambda iv: (iv.start, iv.property_id))],
        "unavailable": sorted(report.unavailable),
        "retryAfter": report.retry_after,
    }, sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Calendari gîtes e import HAR Airbnb")
    sub = parser.add_subparsers(dest="command", required=True)

    p_har = sub.add_parser("har", help="Estrae prenotazioni e note da un HAR del multi-calendario")
    p_har.add_argument("har", help="File .har")
    p_har.add_argument("--out", default=".", help="Cartella di output")
    p_har.set_defaults(func=cmd_har)

    p_arr = sub.add_parser("arrivals", help="Scarica i feed iCal e stampa la finestra arrivi")
    p_arr.set_defaults(func=cmd_arrivals)

    args = parser.parse_args(argv)
    setup_logging()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
