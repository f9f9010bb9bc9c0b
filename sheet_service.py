"""
Spreadsheet feeds: reading the four collections from the published
Google Sheet and sending full-collection saves to the write endpoint.

Saves are fire-and-forget. The write endpoint gives no readable answer,
so a save is only ever "dispatched" (handed to the transport) or
"failed" (could not be handed over); it is never confirmed as stored.
"""
import csv
import io
import logging
from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor

import requests
from flask import current_app

from app import db
from models import SaveRequest, SAVE_PENDING, SAVE_DISPATCHED, SAVE_FAILED
from records import COLLECTIONS, SHEET_NAMES
import field_mapping

logger = logging.getLogger(__name__)

BASE_URL = 'https://docs.google.com/spreadsheets/d/{sheet_id}/gviz/tq?tqx=out:csv&sheet={sheet}'

FeedResult = namedtuple('FeedResult', ['kind', 'ok', 'rows', 'error'])


def feed_url(sheet_id, kind):
    return BASE_URL.format(sheet_id=sheet_id, sheet=SHEET_NAMES[kind])


def parse_csv(text):
    """Parse CSV text into dicts keyed by lowercased header"""
    rows = [row for row in csv.reader(io.StringIO(text))
            if any(cell.strip() for cell in row)]
    if len(rows) < 2:
        return []

    headers = [header.strip().lower() for header in rows[0]]
    parsed = []
    for row in rows[1:]:
        # Short rows leave the trailing columns absent
        parsed.append({headers[i]: value.strip()
                       for i, value in enumerate(row) if i < len(headers)})
    return parsed


def fetch_feed(kind, sheet_id, timeout=10):
    """Fetch and parse one feed; failures are reported, never raised"""
    if not sheet_id:
        return FeedResult(kind, False, [], 'No spreadsheet configured')

    url = feed_url(sheet_id, kind)
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        logger.warning(f"Feed {SHEET_NAMES[kind]} unavailable: {e}")
        return FeedResult(kind, False, [], str(e))

    if not response.ok:
        logger.warning(f"Feed {SHEET_NAMES[kind]} returned HTTP {response.status_code}")
        return FeedResult(kind, False, [], f'HTTP {response.status_code}')

    rows = parse_csv(response.text)
    logger.info(f"Feed {SHEET_NAMES[kind]}: {len(rows)} rows")
    return FeedResult(kind, True, rows, None)


def fetch_all(sheet_id, timeout=10):
    """Fetch the four feeds concurrently, each outcome tracked on its own"""
    with ThreadPoolExecutor(max_workers=len(COLLECTIONS)) as executor:
        futures = {kind: executor.submit(fetch_feed, kind, sheet_id, timeout)
                   for kind in COLLECTIONS}
        return {kind: future.result() for kind, future in futures.items()}


def records_from_feed(result):
    """Records of a feed result; a failed or empty feed gives no records"""
    if not result.ok or not result.rows:
        return ()
    return tuple(field_mapping.map_rows(result.kind, result.rows))


def to_sheet_rows(kind, records):
    """Header row followed by one row per record"""
    return [field_mapping.header_row(kind)] + [field_mapping.record_row(kind, record) for record in records]


def dispatch_save(kind, records, requested_by=None):
    """Send a full collection to the write endpoint and log the outcome"""
    save_request = SaveRequest(
        collection=kind,
        sheet_name=SHEET_NAMES[kind],
        row_count=len(records),
        status=SAVE_PENDING,
        requested_by=requested_by
    )
    db.session.add(save_request)
    db.session.commit()

    write_url = current_app.config.get('SHEET_WRITE_URL')
    if not write_url:
        save_request.status = SAVE_FAILED
        save_request.error = 'No write endpoint configured'
        logger.error(f"Save of {kind} not dispatched: no write endpoint configured")
    else:
        payload = {'sheet': SHEET_NAMES[kind], 'data': to_sheet_rows(kind, records)}
        try:
            # The endpoint's answer is not read back
            requests.post(write_url, json=payload, timeout=current_app.config.get('SHEET_TIMEOUT', 10))
            save_request.status = SAVE_DISPATCHED
            logger.info(f"Save of {kind} dispatched ({len(records)} rows)")
        except requests.RequestException as e:
            save_request.status = SAVE_FAILED
            save_request.error = str(e)
            logger.error(f"Save of {kind} failed to dispatch: {e}")

    db.session.commit()
    return save_request


def recent_save_requests(limit=20):
    return SaveRequest.query.order_by(SaveRequest.id.desc()).limit(limit).all()
