from datetime import datetime

import sqlalchemy as sa

from myzo.extensions import db


class Address(db.Model):
    __tablename__ = "addresses"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    full_name = db.Column(db.String(160), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    address_line1 = db.Column(db.String(255), nullable=False)
    address_line2 = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=False)
    state = db.Column(db.String(120), nullable=False)
    zip_code = db.Column(db.String(20), nullable=False)
    country = db.Column(db.String(80), nullable=False, default="USA")
    is_default = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.false())

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "userId": int(self.user_id),
            "fullName": self.full_name,
            "phone": self.phone,
            "addressLine1": self.address_line1,
            "addressLine2": self.address_line2,
            "city": self.city,
            "state": self.state,
            "zipCode": self.zip_code,
            "country": self.country or "USA",
            "isDefault": bool(self.is_default),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
