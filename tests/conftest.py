import os

# Configure the app before it is imported
os.environ['SQLALCHEMY_DATABASE_URI'] = 'sqlite:///:memory:'
os.environ['SPREADSHEET_ID'] = ''
os.environ['SHEET_WRITE_URL'] = ''
os.environ['SESSION_SECRET'] = 'test-secret'

import pytest

from main import app as flask_app
from app import db
import data_store
import sheet_service
from data_store import AppState
from records import User, Student, Teacher, Schedule

WRITE_URL = 'https://sheets.example.test/exec'

SAMPLE_USERS = (
    User('kepsek', 'Bpk. Hidayat', 'HEADMASTER', password='kepsek123'),
    User('wakasek', 'Ibu Ratna', 'VICE_HEADMASTER'),
    User('guru', 'Ibu Sarah', 'TEACHER', password='guru123'),
    User('siswa', 'Ahmad Rizky', 'STUDENT', student_id='SE-001'),
    User('operator', 'Operator Sekolah', 'ADMIN', password='op123'),
)

SAMPLE_STUDENTS = (
    Student('SE-001', 'Ahmad Rizky', 'XA', 85, 88, 78, 92, 98, 'Baik'),
    Student('SE-002', 'Budi Santoso', 'XA', 65, 70, 60, 80, 85, 'Cukup'),
    Student('SE-005', 'Fajar Nugraha', 'XB', 55, 60, 58, 70, 75, 'Perlu Bimbingan'),
)

SAMPLE_TEACHERS = (
    Teacher('GR-001', '19850101201001', 'Ibu Sarah', 'Matematika', 'XA', '08123456789'),
    Teacher('GR-004', '19780817200504', 'Ust. Abdullah', 'PAI', None, '08112222333'),
)

SAMPLE_SCHEDULES = (
    Schedule('SCH-001', 'Senin', '07:00 - 08:30', 'Matematika', 'XA', 'Ibu Sarah'),
    Schedule('SCH-005', 'Selasa', '08:30 - 10:00', 'Matematika', 'XB', 'Ibu Sarah'),
)


@pytest.fixture
def app():
    flask_app.config.update(TESTING=True, WTF_CSRF_ENABLED=False, SHEET_WRITE_URL=WRITE_URL, SPREADSHEET_ID='')
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        data_store.set_state(AppState(users=SAMPLE_USERS, students=SAMPLE_STUDENTS, teachers=SAMPLE_TEACHERS,
                                      schedules=SAMPLE_SCHEDULES, loaded=True))
        yield flask_app


@pytest.fixture
def posted(monkeypatch):
    """Capture writes to the spreadsheet endpoint instead of sending them"""
    calls = []

    def fake_post(url, json=None, timeout=None):
        calls.append({'url': url, 'json': json, 'timeout': timeout})
        return object()

    monkeypatch.setattr(sheet_service.requests, 'post', fake_post)
    return calls


@pytest.fixture
def client(app, posted):
    return app.test_client()


def login(client, username, password):
    return client.post('/login', data={'username': username, 'password': password})
