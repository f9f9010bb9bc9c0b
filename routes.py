from flask import render_template, request, redirect, url_for, flash, jsonify, session, make_response
from flask_login import login_user, logout_user, login_required, current_user
from urllib.parse import urlparse
from flask_wtf import FlaskForm
from wtforms import StringField, PasswordField, SubmitField
from wtforms.validators import InputRequired, Length
from functools import wraps
from werkzeug.utils import secure_filename
from app import app
import access_policy as policy
import analysis
import auth
import data_store
import excel_service
import field_mapping
import sheet_service
from models import SAVE_DISPATCHED
from records import USERS, STUDENTS, TEACHERS, SCHEDULES, SHEET_NAMES, RECORD_TYPES, record_key
import logging

logger = logging.getLogger(__name__)

VIEW_ENDPOINTS = {
    policy.DASHBOARD: ('dashboard', 'Dashboard'),
    policy.USER_MANAGEMENT: ('users', 'Account Management'),
    policy.STUDENTS_VIEW: ('students', 'Students & Grades'),
    policy.TEACHERS_VIEW: ('teachers', 'Teachers'),
    policy.SCHEDULE_VIEW: ('schedule', 'Class Schedule'),
    policy.MY_GRADES: ('my_grades', 'My Grades'),
    policy.AI_ANALYST: ('analysis', 'Data Analysis'),
    policy.SETTINGS: ('settings', 'Settings'),
}

LIST_ENDPOINTS = {
    USERS: 'users',
    STUDENTS: 'students',
    TEACHERS: 'teachers',
    SCHEDULES: 'schedule',
}

COLLECTION_LABELS = {
    USERS: 'Accounts',
    STUDENTS: 'Student grades',
    TEACHERS: 'Teacher roster',
    SCHEDULES: 'Schedule',
}


def is_safe_url(target):
    """Check if a URL is safe for redirects (same host/internal only)"""
    if not target:
        return False

    parsed = urlparse(target)

    # Only relative URLs, so nobody gets redirected off-site
    if parsed.netloc:
        return False

    if parsed.scheme and parsed.scheme not in ['http', 'https', '']:
        return False

    return True

# Login Form
class LoginForm(FlaskForm):
    username = StringField('Username', validators=[InputRequired(), Length(max=80)])
    password = PasswordField('Password', validators=[InputRequired(), Length(max=80)])
    submit = SubmitField('Sign In')


def view_required(view):
    """Decorator to require the current role to have access to a view"""
    def decorator(f):
        @wraps(f)
        @login_required
        def decorated_function(*args, **kwargs):
            if not policy.can_view(current_user.role, view):
                logger.info(f"Access to {view} denied for {current_user.username} ({current_user.role})")
                return render_template('denied.html', view=view), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def edit_required(collection):
    """Decorator to require edit permission on a collection"""
    def decorator(f):
        @wraps(f)
        @login_required
        def decorated_function(*args, **kwargs):
            try:
                policy.require_edit(current_user.role, collection)
            except policy.PermissionDeniedError as e:
                logger.info(f"{current_user.username}: {e}")
                flash(f'Access denied. Your role cannot modify {COLLECTION_LABELS[collection].lower()}.', 'error')
                return redirect(url_for(LIST_ENDPOINTS[collection]))
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def elevated_required(f):
    """Decorator for maintenance actions reserved to school management"""
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if current_user.role not in policy.ELEVATED_ROLES:
            flash('Access denied. Management privileges required.', 'error')
            return redirect(url_for('dashboard'))
        return f(*args, **kwargs)
    return decorated_function


@app.before_request
def prepare_request():
    session.permanent = True
    if request.endpoint != 'static':
        data_store.ensure_loaded()


@app.context_processor
def inject_navigation():
    nav_items = []
    role = None
    if current_user.is_authenticated:
        role = current_user.role
        for view in policy.allowed_views(role):
            endpoint, label = VIEW_ENDPOINTS[view]
            nav_items.append({'view': view, 'endpoint': endpoint, 'label': label})
    return dict(nav_items=nav_items,
                current_role=role,
                role_labels=policy.ROLE_LABELS,
                can_edit=lambda collection: role is not None and policy.can_edit(role, collection))


def _flash_save_result(save_request, message):
    """Report the save dispatch alongside the in-memory change"""
    if save_request.status == SAVE_DISPATCHED:
        flash(f'{message} Changes sent to the spreadsheet.', 'success')
    else:
        flash(f'{message} The change is kept for this session but could not be sent to the spreadsheet: '
              f'{save_request.error}', 'error')


def _commit(kind, records, message):
    save_request = data_store.commit(kind, records, requested_by=current_user.username)
    _flash_save_result(save_request, message)


def _form_record_fields(kind):
    """Record attributes from the submitted form, coerced like spreadsheet cells"""
    return field_mapping.map_row(kind, request.form.to_dict())


def _search(records, attributes):
    term = request.args.get('q', '').strip().lower()
    if not term:
        return list(records)
    return [record for record in records
            if any(term in str(getattr(record, attribute) or '').lower() for attribute in attributes)]


# Endpoints and URL argument name of each collection's mutation routes
MUTATION_ENDPOINTS = {
    USERS: ('add_user', 'edit_user', 'delete_user', 'import_users', 'username'),
    STUDENTS: ('add_student', 'edit_student', 'delete_student', 'import_students', 'student_id'),
    TEACHERS: ('add_teacher', 'edit_teacher', 'delete_teacher', 'import_teachers', 'teacher_id'),
    SCHEDULES: ('add_schedule', 'edit_schedule', 'delete_schedule', 'import_schedule', 'entry_id'),
}


def _render_collection(kind, records, title, editable, **extra):
    add_endpoint, edit_endpoint, delete_endpoint, import_endpoint, key_arg = MUTATION_ENDPOINTS[kind]
    return render_template('collection.html',
                           kind=kind,
                           title=title,
                           records=records,
                           fields=field_mapping.FIELD_TABLE[kind],
                           editable=editable,
                           list_url=url_for(LIST_ENDPOINTS[kind]),
                           add_url=url_for(add_endpoint),
                           import_url=url_for(import_endpoint),
                           template_url=url_for('download_import_template', kind=kind),
                           edit_url=lambda record: url_for(edit_endpoint, **{key_arg: record_key(kind, record)}),
                           delete_url=lambda record: url_for(delete_endpoint, **{key_arg: record_key(kind, record)}),
                           search=request.args.get('q', ''),
                           **extra)


# Authentication Routes
@app.route('/login', methods=['GET', 'POST'])
def login():
    """User login"""
    if current_user.is_authenticated:
        return redirect(url_for('dashboard'))

    form = LoginForm()
    if form.validate_on_submit():
        username = form.username.data.strip()
        user = auth.authenticate(data_store.get_state().users, username, form.password.data)

        if user:
            login_user(auth.load_session_user(data_store.get_state().users, user.username))
            logger.info(f"{user.username} logged in as {user.role}")
            next_page = request.args.get('next')
            if next_page and is_safe_url(next_page):
                return redirect(next_page)
            return redirect(url_for('dashboard'))
        else:
            flash('Invalid username or password', 'error')

    return render_template('login.html', form=form)


@app.route('/logout')
@login_required
def logout():
    """User logout"""
    logout_user()
    flash('You have been logged out')
    return redirect(url_for('login'))


@app.route('/')
def index():
    """Landing page"""
    if current_user.is_authenticated:
        return redirect(url_for('dashboard'))
    return redirect(url_for('login'))


def _dashboard_students():
    """Students a dashboard may show; a student only sees their own record"""
    students = data_store.get_state().students
    if current_user.role == policy.STUDENT:
        return [s for s in students if current_user.student_id and s.id == current_user.student_id]
    return list(students)


@app.route('/dashboard')
@view_required(policy.DASHBOARD)
def dashboard():
    """Main dashboard"""
    students = _dashboard_students()
    return render_template('dashboard.html', stats=analysis.summarize(students), subjects=analysis.SUBJECTS)


@app.route('/api/dashboard-stats')
@view_required(policy.DASHBOARD)
def dashboard_stats():
    """API endpoint for dashboard statistics"""
    return jsonify(analysis.summarize(_dashboard_students()))


# Student grade routes
@app.route('/students')
@view_required(policy.STUDENTS_VIEW)
def students():
    """Student grade table"""
    records = _search(data_store.get_state().students, ['id', 'name', 'class_name'])
    return _render_collection(STUDENTS, records, 'Students & Grades',
                              policy.can_edit(current_user.role, STUDENTS), exportable=True)


@app.route('/students/add', methods=['POST'])
@edit_required(STUDENTS)
def add_student():
    """Add a student; new students go to the top of the table"""
    fields = _form_record_fields(STUDENTS)
    missing = field_mapping.missing_fields(STUDENTS, fields)
    if missing:
        flash(f'Missing required fields: {", ".join(missing)}', 'error')
        return redirect(url_for('students'))

    records = data_store.get_state().students
    fields['id'] = data_store.new_record_id(STUDENTS, records)
    student = RECORD_TYPES[STUDENTS](**fields)
    _commit(STUDENTS, data_store.add_record(records, student, front=True),
            f'Student "{student.name}" added.')
    return redirect(url_for('students'))


@app.route('/students/<student_id>/edit', methods=['POST'])
@edit_required(STUDENTS)
def edit_student(student_id):
    return _edit_record(STUDENTS, student_id)


@app.route('/students/<student_id>/delete', methods=['POST'])
@edit_required(STUDENTS)
def delete_student(student_id):
    return _delete_record(STUDENTS, student_id)


@app.route('/students/import', methods=['POST'])
@edit_required(STUDENTS)
def import_students():
    return _import_records(STUDENTS)


@app.route('/students/export')
@view_required(policy.STUDENTS_VIEW)
def export_students():
    """Download the student grade table as CSV"""
    response = make_response(excel_service.export_students_csv(data_store.get_state().students))
    response.headers['Content-Type'] = 'text/csv'
    response.headers['Content-Disposition'] = 'attachment; filename=student_grades.csv'
    return response


# Teacher routes
@app.route('/teachers')
@view_required(policy.TEACHERS_VIEW)
def teachers():
    """Teacher roster"""
    records = _search(data_store.get_state().teachers, ['name', 'subject', 'nip'])
    return _render_collection(TEACHERS, records, 'Teachers & Staff',
                              policy.can_edit(current_user.role, TEACHERS))


@app.route('/teachers/add', methods=['POST'])
@edit_required(TEACHERS)
def add_teacher():
    """Add a teacher to the roster"""
    fields = _form_record_fields(TEACHERS)
    missing = field_mapping.missing_fields(TEACHERS, fields)
    if missing:
        flash(f'Missing required fields: {", ".join(missing)}', 'error')
        return redirect(url_for('teachers'))

    records = data_store.get_state().teachers
    fields['id'] = data_store.new_record_id(TEACHERS, records)
    fields['nip'] = fields['nip'] or '-'
    fields['phone'] = fields['phone'] or '-'
    teacher = RECORD_TYPES[TEACHERS](**fields)
    _commit(TEACHERS, data_store.add_record(records, teacher), f'Teacher "{teacher.name}" added.')
    return redirect(url_for('teachers'))


@app.route('/teachers/<teacher_id>/edit', methods=['POST'])
@edit_required(TEACHERS)
def edit_teacher(teacher_id):
    return _edit_record(TEACHERS, teacher_id)


@app.route('/teachers/<teacher_id>/delete', methods=['POST'])
@edit_required(TEACHERS)
def delete_teacher(teacher_id):
    return _delete_record(TEACHERS, teacher_id)


@app.route('/teachers/import', methods=['POST'])
@edit_required(TEACHERS)
def import_teachers():
    return _import_records(TEACHERS)


# Schedule routes
def _visible_schedule():
    """A student sees their own class's schedule once their record resolves"""
    state = data_store.get_state()
    if current_user.role == policy.STUDENT:
        student = state.find_student(current_user.student_id)
        if student:
            return [entry for entry in state.schedules if entry.class_name == student.class_name]
    return list(state.schedules)


@app.route('/schedule')
@view_required(policy.SCHEDULE_VIEW)
def schedule():
    """Class schedule"""
    records = _visible_schedule()
    records = sorted(records, key=lambda entry: (entry.class_name, entry.day, entry.time))
    return _render_collection(SCHEDULES, records, 'Class Schedule',
                              policy.can_edit(current_user.role, SCHEDULES))


@app.route('/schedule/add', methods=['POST'])
@edit_required(SCHEDULES)
def add_schedule():
    """Add a schedule entry"""
    fields = _form_record_fields(SCHEDULES)
    missing = field_mapping.missing_fields(SCHEDULES, fields)
    if missing:
        flash(f'Missing required fields: {", ".join(missing)}', 'error')
        return redirect(url_for('schedule'))

    records = data_store.get_state().schedules
    fields['id'] = data_store.new_record_id(SCHEDULES, records)
    entry = RECORD_TYPES[SCHEDULES](**fields)
    _commit(SCHEDULES, data_store.add_record(records, entry),
            f'{entry.subject} on {entry.day} {entry.time} added for class {entry.class_name}.')
    return redirect(url_for('schedule'))


@app.route('/schedule/<entry_id>/edit', methods=['POST'])
@edit_required(SCHEDULES)
def edit_schedule(entry_id):
    return _edit_record(SCHEDULES, entry_id)


@app.route('/schedule/<entry_id>/delete', methods=['POST'])
@edit_required(SCHEDULES)
def delete_schedule(entry_id):
    return _delete_record(SCHEDULES, entry_id)


@app.route('/schedule/import', methods=['POST'])
@edit_required(SCHEDULES)
def import_schedule():
    return _import_records(SCHEDULES)


# Shared record handlers
def _edit_record(kind, key):
    records = data_store.get_state().collection(kind)
    if data_store.find_record(kind, records, key) is None:
        flash('Record not found!', 'error')
        return redirect(url_for(LIST_ENDPOINTS[kind]))

    changes = _form_record_fields(kind)
    changes.pop('id', None)
    updated = data_store.update_record(kind, records, key, **changes)
    _commit(kind, updated, f'Record {key} updated.')
    return redirect(url_for(LIST_ENDPOINTS[kind]))


def _delete_record(kind, key):
    records = data_store.get_state().collection(kind)
    try:
        remaining = data_store.delete_record(kind, records, key)
    except data_store.RecordNotFoundError:
        flash('Record not found!', 'error')
        return redirect(url_for(LIST_ENDPOINTS[kind]))

    _commit(kind, remaining, f'Record {key} deleted.')
    return redirect(url_for(LIST_ENDPOINTS[kind]))


def _uploaded_rows():
    """Rows of the uploaded spreadsheet, or None after flashing the problem"""
    if 'file' not in request.files:
        flash('No file uploaded!', 'error')
        return None

    file = request.files['file']
    if file.filename == '':
        flash('No file selected!', 'error')
        return None

    try:
        return excel_service.read_spreadsheet(file.stream, secure_filename(file.filename))
    except excel_service.ImportFormatError as e:
        flash(str(e), 'error')
        return None


def _import_records(kind):
    """Handle bulk upload of students, teachers or schedule entries"""
    rows = _uploaded_rows()
    if rows is None:
        return redirect(url_for(LIST_ENDPOINTS[kind]))

    records = data_store.get_state().collection(kind)
    incoming = excel_service.map_import_rows(kind, rows, existing=records)
    if len(incoming) < len(rows):
        flash(f'{len(rows) - len(incoming)} rows skipped (missing required fields).', 'error')
    if not incoming:
        return redirect(url_for(LIST_ENDPOINTS[kind]))

    _commit(kind, data_store.merge_records(kind, records, incoming),
            f'Successfully imported {len(incoming)} rows!')
    return redirect(url_for(LIST_ENDPOINTS[kind]))


@app.route('/templates/<kind>.csv')
@login_required
def download_import_template(kind):
    """CSV template for a bulk import"""
    if kind not in LIST_ENDPOINTS or not policy.can_edit(current_user.role, kind):
        flash('Access denied.', 'error')
        return redirect(url_for('dashboard'))

    response = make_response(excel_service.create_import_template(kind))
    response.headers['Content-Type'] = 'text/csv'
    response.headers['Content-Disposition'] = f'attachment; filename={SHEET_NAMES[kind].lower()}_template.csv'
    return response


# Student-only view
@app.route('/my-grades')
@view_required(policy.MY_GRADES)
def my_grades():
    """Read-only grade report for the logged-in student"""
    student = data_store.get_state().find_student(current_user.student_id)
    records = [student] if student else []
    return _render_collection(STUDENTS, records, 'My Grades', False)


# Analysis
@app.route('/analysis', endpoint='analysis')
@view_required(policy.AI_ANALYST)
def analysis_view():
    """Heuristic analysis of the student collection"""
    result = analysis.analyze_students(data_store.get_state().students)
    return render_template('analysis.html', result=result)


# Account management routes
@app.route('/users')
@view_required(policy.USER_MANAGEMENT)
def users():
    """Account list; admin accounts are only listed for admins"""
    visible = policy.visible_users(data_store.get_state().users, current_user.role)
    records = _search(visible, ['name', 'username', 'role'])
    return _render_collection(USERS, records, 'Account Management',
                              policy.can_edit(current_user.role, USERS),
                              roles=policy.ROLES,
                              can_manage=lambda record: policy.can_manage_account(current_user.role, record.role))

def _account_fields():
    fields = _form_record_fields(USERS)
    # Only student accounts link to a student record
    if fields['role'] != policy.STUDENT:
        fields['student_id'] = None
    return fields

@app.route('/users/add', methods=['POST'])
@edit_required(USERS)
def add_user():
    """Create an account"""
    fields = _account_fields()
    missing = field_mapping.missing_fields(USERS, fields)
    if missing:
        flash(f'Missing required fields: {", ".join(missing)}', 'error')
        return redirect(url_for('users'))

    if fields['role'] not in policy.ROLES:
        flash(f'Unknown role "{fields["role"]}"', 'error')
        return redirect(url_for('users'))

    if not policy.can_manage_account(current_user.role, fields['role']):
        flash('Access denied. Only admins can create admin accounts.', 'error')
        return redirect(url_for('users'))

    if auth.is_superadmin(fields['username']):
        flash(f'Username "{fields["username"]}" is reserved.', 'error')
        return redirect(url_for('users'))

    try:
        updated = data_store.create_user(data_store.get_state().users, RECORD_TYPES[USERS](**fields))
    except data_store.DuplicateUsernameError as e:
        flash(f'{e}. Please choose a different username.', 'error')
        return redirect(url_for('users'))

    _commit(USERS, updated, f'Account "{fields["username"]}" created.')
    return redirect(url_for('users'))

@app.route('/users/<username>/edit', methods=['POST'])
@edit_required(USERS)
def edit_user(username):
    """Update an account; the username itself cannot change"""
    records = data_store.get_state().users
    existing = data_store.find_record(USERS, records, username)
    if existing is None:
        flash('User not found', 'error')
        return redirect(url_for('users'))

    fields = _account_fields()
    fields.pop('username', None)
    if not fields['avatar']:
        fields.pop('avatar')
    if fields['role'] not in policy.ROLES:
        flash(f'Unknown role "{fields["role"]}"', 'error')
        return redirect(url_for('users'))

    if not (policy.can_manage_account(current_user.role, existing.role)
            and policy.can_manage_account(current_user.role, fields['role'])):
        flash('Access denied. Only admins can manage admin accounts.', 'error')
        return redirect(url_for('users'))

    _commit(USERS, data_store.update_user(records, username, **fields), f'Account "{username}" updated.')
    return redirect(url_for('users'))

@app.route('/users/<username>/delete', methods=['POST'])
@edit_required(USERS)
def delete_user(username):
    """Delete an account"""
    records = data_store.get_state().users
    existing = data_store.find_record(USERS, records, username)
    if existing is None:
        flash('User not found', 'error')
        return redirect(url_for('users'))

    if not policy.can_manage_account(current_user.role, existing.role):
        flash('Access denied. Only admins can manage admin accounts.', 'error')
        return redirect(url_for('users'))

    _commit(USERS, data_store.delete_user(records, username), f'Account "{username}" deleted.')
    return redirect(url_for('users'))

@app.route('/users/import', methods=['POST'])
@edit_required(USERS)
def import_users():
    """Bulk account upload, merged by username"""
    rows = _uploaded_rows()
    if rows is None:
        return redirect(url_for('users'))

    incoming = []
    skipped = 0
    for user in excel_service.map_import_rows(USERS, rows):
        if not user.username or auth.is_superadmin(user.username) or user.role not in policy.ROLES:
            skipped += 1
            continue
        existing = data_store.find_record(USERS, data_store.get_state().users, user.username)
        if not policy.can_manage_account(current_user.role, user.role) or \
                (existing is not None and not policy.can_manage_account(current_user.role, existing.role)):
            skipped += 1
            continue
        incoming.append(user)

    if skipped:
        flash(f'{skipped} rows skipped (missing username, unknown role or not permitted for your role).', 'error')

    if incoming:
        merged = data_store.merge_users(data_store.get_state().users, incoming)
        _commit(USERS, merged, f'Successfully imported {len(incoming)} accounts!')
    return redirect(url_for('users'))

# Settings
@app.route('/settings', methods=['GET', 'POST'])
@view_required(policy.SETTINGS)
def settings():
    """Change the logged-in user's password"""
    if request.method == 'POST':
        if current_user.is_superadmin:
            flash('The built-in admin password is set through configuration.', 'error')
            return redirect(url_for('settings'))

        records = data_store.get_state().users
        user = data_store.find_record(USERS, records, current_user.username)
        if user is None:
            flash('User not found', 'error')
            return redirect(url_for('settings'))

        try:
            auth.validate_password_change(user,
                                          request.form.get('current_password', ''),
                                          request.form.get('new_password', ''),
                                          request.form.get('confirm_password', ''))
        except auth.PasswordChangeError as e:
            flash(str(e), 'error')
            return redirect(url_for('settings'))

        updated = data_store.change_password(records, user.username, request.form['new_password'])
        _commit(USERS, updated, 'Password updated successfully!')
        return redirect(url_for('settings'))

    return render_template('settings.html')

# Maintenance
@app.route('/data/reload', methods=['POST'])
@elevated_required
def reload_data():
    """Re-read all four feeds from the spreadsheet"""
    results = data_store.reload()
    failed = [SHEET_NAMES[kind] for kind, result in results.items() if not result.ok]
    if failed:
        flash(f'Data reloaded. Unavailable sheets: {", ".join(failed)}', 'error')
    else:
        flash('Data reloaded from the spreadsheet.', 'success')
    return redirect(url_for('dashboard'))

@app.route('/api/save-requests')
@elevated_required
def save_requests():
    """Recent collection saves and their dispatch status"""
    limit = request.args.get('limit', 20, type=int)
    return jsonify([save_request.to_dict() for save_request in sheet_service.recent_save_requests(limit)])
