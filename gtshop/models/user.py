import uuid
from datetime import datetime, timezone

import bcrypt

from gtshop.extensions import db


class User(db.Model):
    __tablename__ = 'users'

    user_id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.Text, nullable=False)
    email_verified = db.Column(db.Boolean, nullable=False, default=False)
    # Admin directory: operators are users flagged is_admin, matched to
    # Telegram callbacks through telegram_id
    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    telegram_id = db.Column(db.String(32), index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def set_password(self, password):
        self.password_hash = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')

    def check_password(self, password):
        return bcrypt.checkpw(password.encode('utf-8'), self.password_hash.encode('utf-8'))

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'email': self.email,
            'email_verified': self.email_verified,
            'is_admin': self.is_admin,
        }
