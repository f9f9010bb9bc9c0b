import uuid

import pytest

import data_store
from data_store import AppState
from models import SAVE_FAILED
from records import User, Student, Teacher, USERS, STUDENTS, TEACHERS

from conftest import SAMPLE_STUDENTS, SAMPLE_TEACHERS


def test_create_then_read_returns_same_record():
    teacher = Teacher(data_store.new_record_id(TEACHERS, SAMPLE_TEACHERS), '1990', 'Mrs. Jessica', 'B. Inggris', 'XC', '0813')

    teachers = data_store.add_record(SAMPLE_TEACHERS, teacher)

    assert data_store.find_record(TEACHERS, teachers, teacher.id) == teacher
    assert teacher.id.startswith('GR-')
    assert teacher.id not in {t.id for t in SAMPLE_TEACHERS}


def test_students_can_be_added_to_the_front():
    student = Student('SE-900', 'Baru', 'XA')
    students = data_store.add_record(SAMPLE_STUDENTS, student, front=True)
    assert students[0] == student
    assert students[1:] == SAMPLE_STUDENTS


def test_generate_id_skips_taken_identifiers(monkeypatch):
    values = iter([uuid.UUID('abcdef00-0000-0000-0000-000000000000'),
                   uuid.UUID('abcdef11-0000-0000-0000-000000000000'),
                   uuid.UUID('12345600-0000-0000-0000-000000000000')])
    monkeypatch.setattr(data_store.uuid, 'uuid4', lambda: next(values))

    assert data_store.generate_id('SE', {'SE-ABCDEF'}) == 'SE-123456'


def test_update_record_changes_only_the_match():
    students = data_store.update_record(STUDENTS, SAMPLE_STUDENTS, 'SE-002', math=90, behavior='Baik')

    assert students[1].math == 90
    assert students[1].behavior == 'Baik'
    assert students[0] == SAMPLE_STUDENTS[0]
    assert SAMPLE_STUDENTS[1].math == 65


def test_update_and_delete_unknown_record():
    with pytest.raises(data_store.RecordNotFoundError):
        data_store.update_record(STUDENTS, SAMPLE_STUDENTS, 'SE-404', math=1)
    with pytest.raises(data_store.RecordNotFoundError):
        data_store.delete_record(STUDENTS, SAMPLE_STUDENTS, 'SE-404')


def test_delete_record():
    students = data_store.delete_record(STUDENTS, SAMPLE_STUDENTS, 'SE-002')
    assert [s.id for s in students] == ['SE-001', 'SE-005']


def test_merge_users_replaces_in_place_and_appends():
    existing = (User('a', 'A', 'TEACHER'), User('b', 'B', 'STUDENT'), User('c', 'C', 'TEACHER'))
    incoming = [User('d', 'D', 'STUDENT'), User('b', 'B2', 'TEACHER'), User('e', 'E', 'TEACHER')]

    merged = data_store.merge_users(existing, incoming)

    assert [u.username for u in merged] == ['a', 'b', 'c', 'd', 'e']
    assert merged[1] == User('b', 'B2', 'TEACHER')
    assert len(merged) == len(existing) + 2


def test_merge_users_with_repeated_new_username_keeps_last():
    merged = data_store.merge_users((), [User('x', 'First', 'STUDENT'), User('x', 'Second', 'STUDENT')])
    assert merged == (User('x', 'Second', 'STUDENT'),)


def test_create_user_rejects_duplicate_username():
    users = (User('guru', 'Ibu Sarah', 'TEACHER'),)
    with pytest.raises(data_store.DuplicateUsernameError):
        data_store.create_user(users, User('guru', 'Someone Else', 'STUDENT'))


def test_create_user_applies_default_password():
    users = data_store.create_user((), User('siswa2', 'Siswa Dua', 'STUDENT', student_id='SE-002'))
    assert users[0].password == data_store.DEFAULT_PASSWORD


def test_update_user_blank_password_keeps_current():
    users = (User('guru', 'Ibu Sarah', 'TEACHER', password='secret'),)

    updated = data_store.update_user(users, 'guru', name='Ibu Sarah S.', password=None)

    assert updated[0].password == 'secret'
    assert updated[0].name == 'Ibu Sarah S.'


def test_app_state_replace_is_a_new_state():
    state = AppState(students=SAMPLE_STUDENTS)
    new_state = state.replace(STUDENTS, SAMPLE_STUDENTS[:1])

    assert len(state.students) == 3
    assert len(new_state.students) == 1
    assert new_state.find_student('SE-001').name == 'Ahmad Rizky'
    assert new_state.find_student(None) is None


def test_commit_keeps_change_when_save_fails(app):
    app.config['SHEET_WRITE_URL'] = ''
    remaining = data_store.delete_record(STUDENTS, data_store.get_state().students, 'SE-005')

    save_request = data_store.commit(STUDENTS, remaining)

    assert save_request.status == SAVE_FAILED
    assert [s.id for s in data_store.get_state().students] == ['SE-001', 'SE-002']


def test_reload_degrades_failed_feeds_to_empty(app, monkeypatch):
    class Response:
        ok = True
        status_code = 200
        text = 'username,name,role,password\nguru,Ibu Sarah,TEACHER,\n'

    def fake_get(url, timeout=None):
        if url.endswith('sheet=Akun'):
            return Response()
        raise data_store.sheet_service.requests.ConnectionError('offline')

    app.config['SPREADSHEET_ID'] = 'sheet-123'
    monkeypatch.setattr(data_store.sheet_service.requests, 'get', fake_get)

    data_store.reload()
    state = data_store.get_state()

    assert state.loaded
    assert state.collection(USERS) == (User('guru', 'Ibu Sarah', 'TEACHER'),)
    assert state.students == () and state.teachers == () and state.schedules == ()
