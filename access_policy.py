"""
Role-based access policy.
Every role's views and editable collections are listed explicitly;
there is no hierarchy between roles.
"""
from records import USERS, STUDENTS, TEACHERS, SCHEDULES

# Roles
ADMIN = 'ADMIN'
HEADMASTER = 'HEADMASTER'
VICE_HEADMASTER = 'VICE_HEADMASTER'
TEACHER = 'TEACHER'
STUDENT = 'STUDENT'

ROLES = (ADMIN, HEADMASTER, VICE_HEADMASTER, TEACHER, STUDENT)

# School management roles
ELEVATED_ROLES = frozenset([ADMIN, HEADMASTER, VICE_HEADMASTER])

ROLE_LABELS = {
    ADMIN: 'Admin',
    HEADMASTER: 'Headmaster',
    VICE_HEADMASTER: 'Vice Headmaster',
    TEACHER: 'Teacher',
    STUDENT: 'Student',
}

# Views
DASHBOARD = 'DASHBOARD'
STUDENTS_VIEW = 'STUDENTS'
TEACHERS_VIEW = 'TEACHERS'
SCHEDULE_VIEW = 'SCHEDULE'
MY_GRADES = 'MY_GRADES'
AI_ANALYST = 'AI_ANALYST'
USER_MANAGEMENT = 'USER_MANAGEMENT'
SETTINGS = 'SETTINGS'

VIEWS = (DASHBOARD, USER_MANAGEMENT, STUDENTS_VIEW, TEACHERS_VIEW,
         SCHEDULE_VIEW, MY_GRADES, AI_ANALYST, SETTINGS)

VIEW_ACCESS = {
    ADMIN: frozenset([DASHBOARD, USER_MANAGEMENT, STUDENTS_VIEW, TEACHERS_VIEW,
                      SCHEDULE_VIEW, AI_ANALYST, SETTINGS]),
    HEADMASTER: frozenset([DASHBOARD, USER_MANAGEMENT, STUDENTS_VIEW, TEACHERS_VIEW,
                           SCHEDULE_VIEW, AI_ANALYST, SETTINGS]),
    VICE_HEADMASTER: frozenset([DASHBOARD, USER_MANAGEMENT, STUDENTS_VIEW, TEACHERS_VIEW,
                                SCHEDULE_VIEW, AI_ANALYST, SETTINGS]),
    TEACHER: frozenset([DASHBOARD, STUDENTS_VIEW, SCHEDULE_VIEW, SETTINGS]),
    STUDENT: frozenset([DASHBOARD, SCHEDULE_VIEW, MY_GRADES, SETTINGS]),
}

EDIT_ACCESS = {
    STUDENTS: frozenset([ADMIN, HEADMASTER, VICE_HEADMASTER]),
    TEACHERS: frozenset([ADMIN, HEADMASTER, VICE_HEADMASTER]),
    SCHEDULES: frozenset([ADMIN, HEADMASTER, VICE_HEADMASTER, TEACHER]),
    USERS: frozenset([ADMIN, HEADMASTER, VICE_HEADMASTER]),
}


class PermissionDeniedError(Exception):
    """Raised when a role attempts an operation outside its allow-set"""


def allowed_views(role):
    """Views navigable for a role, in menu order"""
    allowed = VIEW_ACCESS.get(role, frozenset())
    return [view for view in VIEWS if view in allowed]


def can_view(role, view):
    return view in VIEW_ACCESS.get(role, frozenset())


def can_edit(role, collection):
    return role in EDIT_ACCESS.get(collection, frozenset())


def can_manage_account(actor_role, target_role):
    """Account managers may only touch admin accounts when they are admins themselves"""
    if not can_edit(actor_role, USERS):
        return False
    return target_role != ADMIN or actor_role == ADMIN


def visible_users(users, role):
    """Admin accounts are only listed for admin viewers"""
    if role == ADMIN:
        return list(users)
    return [user for user in users if user.role != ADMIN]


def require_edit(role, collection):
    if not can_edit(role, collection):
        raise PermissionDeniedError(f'Role {role} may not modify {collection}')
