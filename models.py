from datetime import datetime

from app import db
from flask_login import UserMixin

# Save request status constants
SAVE_PENDING = 'pending'          # recorded, not yet handed to the transport
SAVE_DISPATCHED = 'dispatched'    # accepted for transmission, durability unknown
SAVE_FAILED = 'failed'            # could not be handed to the transport


class SessionUser(UserMixin):
    """Logged-in identity, keyed by username"""

    def __init__(self, user, is_superadmin=False):
        self.username = user.username
        self.name = user.name
        self.role = user.role
        self.student_id = user.student_id
        self.avatar = user.avatar
        self.is_superadmin = is_superadmin

    def get_id(self):
        return self.username

    @property
    def initials(self):
        source = self.avatar or self.name or self.username or 'U'
        return source[:2].upper()

    def __repr__(self):
        return f'<SessionUser {self.username} ({self.role})>'


# Log of full-collection saves sent to the spreadsheet write endpoint
class SaveRequest(db.Model):
    __tablename__ = 'save_requests'
    id = db.Column(db.Integer, primary_key=True)
    collection = db.Column(db.String(32), nullable=False)
    sheet_name = db.Column(db.String(64), nullable=False)
    row_count = db.Column(db.Integer, default=0)
    status = db.Column(db.String(16), default=SAVE_PENDING, nullable=False)
    error = db.Column(db.Text)
    requested_by = db.Column(db.String(80))

    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    def to_dict(self):
        return {
            'id': self.id,
            'collection': self.collection,
            'sheet_name': self.sheet_name,
            'row_count': self.row_count,
            'status': self.status,
            'error': self.error,
            'requested_by': self.requested_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f'<SaveRequest {self.collection} {self.status}>'
