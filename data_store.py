"""
In-memory data store for the school dashboard.

The four collections live in one immutable AppState kept on the Flask
app. Mutations are pure functions that return a new collection; commit()
swaps it into the state and then sends the whole collection to the
spreadsheet. The in-memory update stands even if the save fails.
"""
import dataclasses
import logging
import uuid
from dataclasses import dataclass

from flask import current_app

import sheet_service
from records import (USERS, STUDENTS, TEACHERS, SCHEDULES, ID_PREFIXES,
                     record_key)

logger = logging.getLogger(__name__)

STATE_KEY = 'school_state'

# Credential used for accounts created without a password
DEFAULT_PASSWORD = '123'


class DuplicateUsernameError(ValueError):
    """Raised when a new account reuses an existing username"""


class RecordNotFoundError(KeyError):
    """Raised when a record id or username is not in the collection"""


@dataclass(frozen=True)
class AppState:
    users: tuple = ()
    students: tuple = ()
    teachers: tuple = ()
    schedules: tuple = ()
    loaded: bool = False

    def collection(self, kind):
        return getattr(self, kind)

    def replace(self, kind, records):
        return dataclasses.replace(self, **{kind: tuple(records)})

    def find_student(self, student_id):
        if not student_id:
            return None
        for student in self.students:
            if student.id == student_id:
                return student
        return None


# State holder
def get_state():
    return current_app.extensions.setdefault(STATE_KEY, AppState())


def set_state(state):
    current_app.extensions[STATE_KEY] = state
    return state


def ensure_loaded():
    """Load the collections on first use"""
    if not get_state().loaded:
        reload()


def reload():
    """Replace every collection with a fresh read of the feeds"""
    config = current_app.config
    results = sheet_service.fetch_all(config.get('SPREADSHEET_ID'), config.get('SHEET_TIMEOUT', 10))
    collections = {kind: sheet_service.records_from_feed(result) for kind, result in results.items()}
    set_state(AppState(loaded=True, **collections))
    logger.info(f"Data loaded: {len(collections[USERS])} users, {len(collections[STUDENTS])} students, "
                f"{len(collections[TEACHERS])} teachers, {len(collections[SCHEDULES])} schedule entries")
    return results


def commit(kind, records, requested_by=None):
    """Swap a collection into the state, then dispatch its save"""
    set_state(get_state().replace(kind, records))
    return sheet_service.dispatch_save(kind, tuple(records), requested_by=requested_by)


def generate_id(prefix, taken):
    """Generate an identifier not present in taken"""
    while True:
        candidate = f"{prefix}-{uuid.uuid4().hex[:6].upper()}"
        if candidate not in taken:
            return candidate


def new_record_id(kind, records, reserved=()):
    taken = {record.id for record in records}
    taken.update(reserved)
    return generate_id(ID_PREFIXES[kind], taken)


# Pure collection operations
def find_record(kind, records, key):
    for record in records:
        if record_key(kind, record) == key:
            return record
    return None


def add_record(records, record, front=False):
    if front:
        return (record,) + tuple(records)
    return tuple(records) + (record,)


def update_record(kind, records, key, **changes):
    """Copy of records with the matching record's fields changed"""
    if find_record(kind, records, key) is None:
        raise RecordNotFoundError(key)
    return tuple(dataclasses.replace(record, **changes) if record_key(kind, record) == key else record
                 for record in records)


def delete_record(kind, records, key):
    if find_record(kind, records, key) is None:
        raise RecordNotFoundError(key)
    return tuple(record for record in records if record_key(kind, record) != key)


def merge_records(kind, existing, incoming):
    """Replace records with a matching key in place, append the rest"""
    merged = list(existing)
    positions = {record_key(kind, record): index for index, record in enumerate(merged)}
    for record in incoming:
        key = record_key(kind, record)
        if key in positions:
            merged[positions[key]] = record
        else:
            positions[key] = len(merged)
            merged.append(record)
    return tuple(merged)


def merge_users(existing, incoming):
    return merge_records(USERS, existing, incoming)


def create_user(users, user):
    if find_record(USERS, users, user.username) is not None:
        raise DuplicateUsernameError(f'Username "{user.username}" is already taken')
    if not user.password:
        user = dataclasses.replace(user, password=DEFAULT_PASSWORD)
    return add_record(users, user)


def update_user(users, username, **changes):
    # Blank password in an edit keeps the current one
    if not changes.get('password'):
        changes.pop('password', None)
    return update_record(USERS, users, username, **changes)


def delete_user(users, username):
    return delete_record(USERS, users, username)


def change_password(users, username, new_password):
    return update_record(USERS, users, username, password=new_password)
