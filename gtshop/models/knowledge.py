import uuid
from datetime import datetime, timezone

from gtshop.extensions import db


def _utcnow():
    return datetime.now(timezone.utc)


class KnowledgeEntry(db.Model):
    __tablename__ = "kb_entries"

    id = db.Column(db.String(64), primary_key=True)
    question = db.Column(db.Text, nullable=False)
    answer = db.Column(db.Text, nullable=False)
    keywords = db.Column(db.JSON, nullable=False, default=list)
    category = db.Column(db.String(32), nullable=False, default="general")

    def to_dict(self):
        return {
            "id": self.id,
            "question": self.question,
            "answer": self.answer,
            "keywords": list(self.keywords or []),
            "category": self.category,
        }


class ChatMessage(db.Model):
    __tablename__ = "chat_messages"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    session_id = db.Column(db.String(64), nullable=False, index=True)
    user_uid = db.Column(db.String(36), nullable=False, index=True)
    sender = db.Column(db.String(8), nullable=False)  # user | bot
    text = db.Column(db.Text, nullable=False)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)


class SupportTicket(db.Model):
    __tablename__ = "support_tickets"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_uid = db.Column(db.String(36), nullable=False)
    user_email = db.Column(db.String(255), nullable=False)
    session_id = db.Column(db.String(64), nullable=True)
    subject = db.Column(db.String(255), nullable=False, default="Chat Support Request")
    status = db.Column(db.String(16), nullable=False, default="open")
    priority = db.Column(db.String(16), nullable=False, default="normal")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        created = self.created_at
        if created is not None and created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return {
            "id": self.id,
            "userId": self.user_uid,
            "userEmail": self.user_email,
            "sessionId": self.session_id,
            "subject": self.subject,
            "status": self.status,
            "priority": self.priority,
            "createdAt": created.isoformat() if created else None,
        }
