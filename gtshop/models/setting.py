from datetime import datetime, timezone

from gtshop.extensions import db


class Setting(db.Model):
    """One node of the shop config tree, e.g. key='prices' -> {"rgt": {...}}."""

    __tablename__ = "settings"

    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.JSON, nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
