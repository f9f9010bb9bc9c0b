"""
Credential checks against the spreadsheet account list.
"""
import logging

from flask import current_app

from access_policy import ADMIN
from data_store import DEFAULT_PASSWORD
from models import SessionUser
from records import User

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 4


class PasswordChangeError(ValueError):
    """Raised when a password change request is rejected"""


def superadmin():
    """Built-in admin account, independent of the spreadsheet"""
    return User(username=current_app.config['SUPERADMIN_USERNAME'], name='Administrator', role=ADMIN, avatar='AD')


def is_superadmin(username):
    return bool(username) and username == current_app.config['SUPERADMIN_USERNAME']


def check_password(user, password):
    """Accounts without a stored password use the default credential"""
    return (user.password or DEFAULT_PASSWORD) == password


def authenticate(users, username, password):
    """Return the matching account for the credentials, or None"""
    if is_superadmin(username):
        if password == current_app.config['SUPERADMIN_PASSWORD']:
            return superadmin()
        return None

    for user in users:
        if user.username == username:
            if check_password(user, password):
                return user
            logger.info(f"Rejected password for {username}")
            return None
    return None


def load_session_user(users, username):
    if is_superadmin(username):
        return SessionUser(superadmin(), is_superadmin=True)
    for user in users:
        if user.username == username:
            return SessionUser(user)
    return None


def validate_password_change(user, current_password, new_password, confirm_password):
    """Raise PasswordChangeError unless the change may go ahead"""
    if not check_password(user, current_password):
        raise PasswordChangeError('Current password is incorrect')
    if new_password != confirm_password:
        raise PasswordChangeError('New passwords do not match')
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise PasswordChangeError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters long')
