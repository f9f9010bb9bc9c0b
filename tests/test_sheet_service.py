import pytest
import requests

import sheet_service
from models import SaveRequest, SAVE_DISPATCHED, SAVE_FAILED
from records import Schedule, STUDENTS, SCHEDULES, USERS, TEACHERS

from conftest import WRITE_URL


class FakeResponse:
    def __init__(self, text='', status_code=200):
        self.text = text
        self.status_code = status_code

    @property
    def ok(self):
        return 200 <= self.status_code < 400


def test_parse_csv_handles_quotes_and_blank_lines():
    text = ('"ID","Name","Class"\r\n'
            '\r\n'
            '"SE-001","Rizky, Ahmad","XA"\r\n'
            'SE-002,Budi,XB\n')

    rows = sheet_service.parse_csv(text)

    assert rows == [
        {'id': 'SE-001', 'name': 'Rizky, Ahmad', 'class': 'XA'},
        {'id': 'SE-002', 'name': 'Budi', 'class': 'XB'},
    ]


def test_parse_csv_needs_header_and_data():
    assert sheet_service.parse_csv('') == []
    assert sheet_service.parse_csv('id,name\n') == []


def test_parse_csv_short_row_leaves_columns_absent():
    rows = sheet_service.parse_csv('id,name,class\nSE-001,Ahmad\n')
    assert rows == [{'id': 'SE-001', 'name': 'Ahmad'}]


def test_fetch_all_tracks_each_feed_independently(monkeypatch):
    feeds = {
        'Akun': FakeResponse('username,name,role\nguru,Ibu Sarah,TEACHER\n'),
        'Nilai': FakeResponse('Service Unavailable', status_code=503),
        'Guru': FakeResponse('id,name\n'),
    }

    def fake_get(url, timeout=None):
        sheet = url.rsplit('sheet=', 1)[1]
        if sheet == 'Jadwal':
            raise requests.ConnectionError('connection reset')
        return feeds[sheet]

    monkeypatch.setattr(sheet_service.requests, 'get', fake_get)

    results = sheet_service.fetch_all('sheet-123', timeout=5)

    assert results[USERS].ok
    assert results[STUDENTS].error == 'HTTP 503'
    assert results[TEACHERS].ok and results[TEACHERS].rows == []
    assert not results[SCHEDULES].ok
    assert len(sheet_service.records_from_feed(results[USERS])) == 1
    for kind in (STUDENTS, TEACHERS, SCHEDULES):
        assert sheet_service.records_from_feed(results[kind]) == ()


def test_fetch_without_spreadsheet_skips_network(monkeypatch):
    def fail_get(url, timeout=None):
        raise AssertionError('no request expected')

    monkeypatch.setattr(sheet_service.requests, 'get', fail_get)

    results = sheet_service.fetch_all('')

    assert all(not result.ok for result in results.values())


def test_feed_url_uses_sheet_name():
    url = sheet_service.feed_url('abc', STUDENTS)
    assert url == 'https://docs.google.com/spreadsheets/d/abc/gviz/tq?tqx=out:csv&sheet=Nilai'


def test_dispatch_save_sends_header_and_rows(app, posted):
    entries = (Schedule('SCH-001', 'Senin', '07:00 - 08:30', 'Matematika', 'XA', 'Ibu Sarah'),)

    save_request = sheet_service.dispatch_save(SCHEDULES, entries, requested_by='guru')

    assert save_request.status == SAVE_DISPATCHED
    assert posted[0]['url'] == WRITE_URL
    assert posted[0]['json'] == {
        'sheet': 'Jadwal',
        'data': [['id', 'day', 'time', 'subject', 'class', 'teacher'],
                 ['SCH-001', 'Senin', '07:00 - 08:30', 'Matematika', 'XA', 'Ibu Sarah']],
    }
    assert SaveRequest.query.one().requested_by == 'guru'


def test_dispatch_save_failure_is_recorded(app, monkeypatch):
    def broken_post(url, json=None, timeout=None):
        raise requests.Timeout('timed out')

    monkeypatch.setattr(sheet_service.requests, 'post', broken_post)

    save_request = sheet_service.dispatch_save(STUDENTS, ())

    assert save_request.status == SAVE_FAILED
    assert 'timed out' in save_request.error


def test_dispatch_save_without_endpoint(app, posted):
    app.config['SHEET_WRITE_URL'] = ''

    save_request = sheet_service.dispatch_save(USERS, ())

    assert save_request.status == SAVE_FAILED
    assert posted == []


def test_recent_save_requests_newest_first(app, posted):
    sheet_service.dispatch_save(USERS, ())
    sheet_service.dispatch_save(STUDENTS, ())

    assert [r.collection for r in sheet_service.recent_save_requests()] == [STUDENTS, USERS]
