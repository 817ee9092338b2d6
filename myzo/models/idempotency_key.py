from datetime import datetime

from myzo.extensions import db


class IdempotencyKey(db.Model):
    """A client-supplied retry key, scoped per action and shopper, with the response it produced."""

    __tablename__ = "idempotency_keys"
    __table_args__ = (
        db.UniqueConstraint("scope", "key", name="uq_idempotency_scope_key"),
    )

    id = db.Column(db.Integer, primary_key=True)
    # "<action>:u:<user id>", e.g. "orders_create:u:7"
    scope = db.Column(db.String(128), nullable=False, default="")
    key = db.Column(db.String(128), nullable=False, index=True)
    user_id = db.Column(db.Integer, nullable=True)
    request_hash = db.Column(db.String(64), nullable=False, default="")

    # empty until the first request finishes
    response_json = db.Column(db.Text, nullable=True)
    status_code = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @classmethod
    def find(cls, scope: str, key: str):
        return cls.query.filter_by(scope=scope, key=key).first()
