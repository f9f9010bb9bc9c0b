"""
Bulk import from uploaded spreadsheet files, plus CSV templates and export.
"""
import csv
import dataclasses
import io
import logging

import pandas as pd

import field_mapping
from data_store import DEFAULT_PASSWORD, generate_id
from records import USERS, STUDENTS, TEACHERS, SCHEDULES, ID_PREFIXES

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {'xlsx', 'csv'}

TEMPLATES = {
    USERS: (['Username', 'Nama', 'Role', 'Password', 'StudentID'],
            [['siswa01', 'Ahmad Rizky', 'STUDENT', '123', 'SE-001'],
             ['guru01', 'Ibu Sarah', 'TEACHER', '', '']]),
    STUDENTS: (['ID', 'Nama', 'Kelas', 'Matematika', 'IPA', 'Inggris', 'PAI', 'Kehadiran', 'Perilaku'],
               [['SE-001', 'Ahmad Rizky', 'XA', 85, 88, 78, 92, 98, 'Baik'],
                ['', 'Budi Santoso', 'XA', 65, 70, 60, 80, 85, 'Cukup']]),
    TEACHERS: (['ID', 'NIP', 'Nama', 'Mapel', 'Wali Kelas', 'Telepon'],
               [['GR-001', '19850101201001', 'Ibu Sarah', 'Matematika', 'XA', '08123456789']]),
    SCHEDULES: (['Hari', 'Jam', 'Mapel', 'Kelas', 'Guru'],
                [['Senin', '07:00 - 08:30', 'Matematika', 'XA', 'Ibu Sarah']]),
}

STUDENT_EXPORT_HEADER = ['ID', 'Nama', 'Kelas', 'Matematika', 'IPA', 'Bahasa Inggris', 'PAI', 'Kehadiran', 'Perilaku']


class ImportFormatError(ValueError):
    """Raised when an uploaded file cannot be read as a spreadsheet"""


def allowed_file(filename):
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def read_spreadsheet(stream, filename):
    """
    Read the first sheet of an uploaded file into row dicts.
    Header casing is kept as in the file; empty cells become None.
    """
    if not filename or not allowed_file(filename):
        raise ImportFormatError('Please upload an .xlsx or .csv file')

    try:
        if filename.lower().endswith('.csv'):
            df = pd.read_csv(stream, dtype=str, skipinitialspace=True)
        else:
            df = pd.read_excel(stream, sheet_name=0, engine='openpyxl')
    except Exception as e:
        logger.error(f"Error reading spreadsheet {filename}: {str(e)}")
        raise ImportFormatError(f'Could not read {filename}. Make sure it is a valid spreadsheet.') from e

    df = df.dropna(how='all')
    df.columns = [str(column).strip() for column in df.columns]
    df = df.astype(object).where(pd.notna(df), None)
    rows = df.to_dict('records')
    logger.info(f"Read {len(rows)} rows from {filename}")
    return rows


def map_import_rows(kind, rows, existing=()):
    """
    Map uploaded rows to records.
    Student, teacher and schedule rows missing a required field (footer or
    note rows) are dropped. Rows without an id get a generated one that
    collides neither with the existing collection nor with the rest of
    the batch. Account rows are checked by the caller.
    """
    records = field_mapping.map_rows(kind, rows)

    if kind == USERS:
        return [record if record.password else dataclasses.replace(record, password=DEFAULT_PASSWORD)
                for record in records]

    complete = [record for record in records if not field_mapping.missing_fields(kind, record)]
    if len(complete) < len(records):
        logger.info(f"Dropped {len(records) - len(complete)} incomplete {kind} rows from import")

    taken = {record.id for record in existing}
    taken.update(record.id for record in complete if record.id)
    mapped = []
    for record in complete:
        if not record.id:
            record = dataclasses.replace(record, id=generate_id(ID_PREFIXES[kind], taken))
            taken.add(record.id)
        mapped.append(record)
    return mapped


def create_import_template(kind):
    """Create a CSV template for an import"""
    header, samples = TEMPLATES[kind]
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(header)
    for sample in samples:
        writer.writerow(sample)
    return output.getvalue()


def export_students_csv(students):
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(STUDENT_EXPORT_HEADER)
    for s in students:
        writer.writerow([s.id, s.name, s.class_name, s.math, s.science, s.english,
                         s.islamic_studies, s.attendance, s.behavior])
    return output.getvalue()
