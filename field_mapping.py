"""
Column mapping between spreadsheet rows and record types.

Both the read feeds and uploaded import files go through the same table:
for every record kind an ordered list of FieldSpec entries names the
record attribute, the column header written back to the sheet, the
accepted header aliases (English and Indonesian, matched
case-insensitively) and the coercion applied to the raw cell.
"""
import math
from collections import namedtuple

from records import (USERS, STUDENTS, TEACHERS, SCHEDULES, RECORD_TYPES,
                     BEHAVIOR_GOOD, BEHAVIOR_RATINGS)

FieldSpec = namedtuple('FieldSpec', ['name', 'header', 'aliases', 'coerce'])


def _is_blank(value):
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def to_text(value):
    """Cell to stripped text, blanks become an empty string"""
    if _is_blank(value):
        return ''
    # Spreadsheet readers hand back whole numbers (phone, NIP) as floats
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def to_optional_text(value):
    return to_text(value) or None


def to_number(value):
    """
    Cell to a number; blanks and unparsable values become 0.
    A comma is read as the decimal separator, as in Indonesian sheets, so
    English thousands separators are misread: '1,234' becomes 1.234.
    """
    if _is_blank(value) or isinstance(value, bool):
        return 0
    try:
        if isinstance(value, str):
            number = float(value.strip().replace(',', '.'))
        else:
            number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or math.isinf(number):
        return 0
    if number.is_integer():
        return int(number)
    return number


def to_role(value):
    return to_text(value).upper().replace(' ', '_').replace('-', '_')


def to_behavior(value):
    text = to_text(value)
    if not text:
        return BEHAVIOR_GOOD
    for rating in BEHAVIOR_RATINGS:
        if rating.lower() == text.lower():
            return rating
    return text


FIELD_TABLE = {
    USERS: [
        FieldSpec('username', 'username', ('username', 'user'), to_text),
        FieldSpec('name', 'name', ('name', 'nama', 'nama lengkap'), to_text),
        FieldSpec('role', 'role', ('role', 'peran'), to_role),
        FieldSpec('student_id', 'studentId', ('studentid', 'student_id', 'id siswa'), to_optional_text),
        FieldSpec('password', 'password', ('password', 'kata sandi'), to_optional_text),
        FieldSpec('avatar', 'avatar', ('avatar',), to_optional_text),
    ],
    STUDENTS: [
        FieldSpec('id', 'id', ('id', 'id siswa'), to_text),
        FieldSpec('name', 'name', ('name', 'nama'), to_text),
        FieldSpec('class_name', 'class', ('class', 'kelas'), to_text),
        FieldSpec('math', 'math', ('math', 'matematika'), to_number),
        FieldSpec('science', 'science', ('science', 'ipa'), to_number),
        FieldSpec('english', 'english', ('english', 'inggris', 'bahasa inggris'), to_number),
        FieldSpec('islamic_studies', 'islamicStudies', ('islamicstudies', 'islamic', 'pai'), to_number),
        FieldSpec('attendance', 'attendance', ('attendance', 'kehadiran'), to_number),
        FieldSpec('behavior', 'behavior', ('behavior', 'perilaku'), to_behavior),
    ],
    TEACHERS: [
        FieldSpec('id', 'id', ('id',), to_text),
        FieldSpec('nip', 'nip', ('nip', 'staff number'), to_text),
        FieldSpec('name', 'name', ('name', 'nama'), to_text),
        FieldSpec('subject', 'subject', ('subject', 'mapel', 'mata pelajaran'), to_text),
        FieldSpec('class_teacher', 'classTeacher', ('classteacher', 'homeroom', 'wali kelas'), to_optional_text),
        FieldSpec('phone', 'phone', ('phone', 'telepon', 'hp'), to_text),
    ],
    SCHEDULES: [
        FieldSpec('id', 'id', ('id',), to_text),
        FieldSpec('day', 'day', ('day', 'hari'), to_text),
        FieldSpec('time', 'time', ('time', 'jam'), to_text),
        FieldSpec('subject', 'subject', ('subject', 'mapel', 'mata pelajaran'), to_text),
        FieldSpec('class_name', 'class', ('class', 'kelas'), to_text),
        FieldSpec('teacher', 'teacher', ('teacher', 'guru'), to_text),
    ],
}


# Fields a record needs before it is added from a form or an import
REQUIRED_FIELDS = {
    USERS: ('username', 'name', 'role'),
    STUDENTS: ('name', 'class_name'),
    TEACHERS: ('name', 'subject'),
    SCHEDULES: ('day', 'time', 'subject', 'class_name'),
}


def missing_fields(kind, values):
    """Required attribute names left blank; values is a dict or a record"""
    if not isinstance(values, dict):
        values = vars(values)
    return [name for name in REQUIRED_FIELDS[kind] if values.get(name) in (None, '')]


def _lookup(row, aliases):
    """First non-blank cell among the aliases, or None"""
    for alias in aliases:
        value = row.get(alias)
        if not _is_blank(value):
            return value
    return None


def map_row(kind, row):
    """Map one raw row (any header casing) to a dict of record attributes"""
    lowered = {str(key).strip().lower(): value for key, value in row.items() if key is not None}
    return {spec.name: spec.coerce(_lookup(lowered, spec.aliases))
            for spec in FIELD_TABLE[kind]}


def build_record(kind, row):
    return RECORD_TYPES[kind](**map_row(kind, row))


def map_rows(kind, rows):
    return [build_record(kind, row) for row in rows]


def header_row(kind):
    return [spec.header for spec in FIELD_TABLE[kind]]


def record_row(kind, record):
    """Record as a list of sheet cells in header order"""
    cells = []
    for spec in FIELD_TABLE[kind]:
        value = getattr(record, spec.name)
        cells.append('' if value is None else value)
    return cells
