from datetime import datetime

from myzo.extensions import db


class WebhookEvent(db.Model):
    __tablename__ = "webhook_events"
    __table_args__ = (
        db.UniqueConstraint("provider", "event_id", name="uq_webhook_events_provider_event"),
    )

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(32), nullable=False)  # stripe | razorpay | dodo
    event_id = db.Column(db.String(128), nullable=False)
    event_type = db.Column(db.String(64), nullable=True)
    reference = db.Column(db.String(128), nullable=True)
    status = db.Column(db.String(32), nullable=False, default="received")  # received | processed | failed
    processed_at = db.Column(db.DateTime, nullable=True)
    request_id = db.Column(db.String(64), nullable=True)
    payload_hash = db.Column(db.String(128), nullable=True)
    error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "provider": self.provider,
            "eventId": self.event_id,
            "eventType": self.event_type or "",
            "reference": self.reference or "",
            "status": self.status or "",
            "processedAt": self.processed_at.isoformat() if self.processed_at else None,
            "error": self.error or "",
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
