"""
Record types for the four spreadsheet-backed collections.
Each collection is held in memory as a tuple of these records.
"""
from dataclasses import dataclass
from typing import Optional

# Collection keys
USERS = 'users'
STUDENTS = 'students'
TEACHERS = 'teachers'
SCHEDULES = 'schedules'

COLLECTIONS = (USERS, STUDENTS, TEACHERS, SCHEDULES)

# Sheet (tab) name of each collection in the backing spreadsheet
SHEET_NAMES = {
    USERS: 'Akun',
    STUDENTS: 'Nilai',
    TEACHERS: 'Guru',
    SCHEDULES: 'Jadwal',
}

# Behavior ratings, best to worst
BEHAVIOR_GOOD = 'Baik'
BEHAVIOR_FAIR = 'Cukup'
BEHAVIOR_NEEDS_GUIDANCE = 'Perlu Bimbingan'
BEHAVIOR_RATINGS = (BEHAVIOR_GOOD, BEHAVIOR_FAIR, BEHAVIOR_NEEDS_GUIDANCE)


@dataclass(frozen=True)
class User:
    username: str
    name: str
    role: str
    student_id: Optional[str] = None
    password: Optional[str] = None
    avatar: Optional[str] = None


@dataclass(frozen=True)
class Student:
    id: str
    name: str
    class_name: str
    math: float = 0
    science: float = 0
    english: float = 0
    islamic_studies: float = 0
    attendance: float = 0
    behavior: str = BEHAVIOR_GOOD

    @property
    def average(self):
        """Average of the four subject scores"""
        return (self.math + self.science + self.english + self.islamic_studies) / 4


@dataclass(frozen=True)
class Teacher:
    id: str
    nip: str
    name: str
    subject: str
    class_teacher: Optional[str] = None
    phone: str = ''


@dataclass(frozen=True)
class Schedule:
    id: str
    day: str
    time: str
    subject: str
    class_name: str
    teacher: str


RECORD_TYPES = {
    USERS: User,
    STUDENTS: Student,
    TEACHERS: Teacher,
    SCHEDULES: Schedule,
}

# Prefix used when generating identifiers for new records
ID_PREFIXES = {
    STUDENTS: 'SE',
    TEACHERS: 'GR',
    SCHEDULES: 'SCH',
}


def record_key(kind, record):
    """Identity of a record within its collection (username for accounts)"""
    if kind == USERS:
        return record.username
    return record.id
