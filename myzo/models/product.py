import json
from datetime import datetime

import sqlalchemy as sa

from myzo.extensions import db


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    style_code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, nullable=False, default="")
    price = db.Column(db.Numeric(12, 2), nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)

    # JSON-encoded lists
    materials_json = db.Column(db.Text, nullable=False, default="[]")
    images_json = db.Column(db.Text, nullable=False, default="[]")

    dimensions = db.Column(db.String(200), nullable=True)
    care_instructions = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, server_default=sa.true())
    is_featured = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.false())

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = db.relationship("Category", lazy="joined")

    __table_args__ = (
        sa.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
    )

    @staticmethod
    def _load_list(raw) -> list:
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except Exception:
            return []
        return [str(x) for x in data] if isinstance(data, list) else []

    @property
    def materials(self) -> list:
        return self._load_list(self.materials_json)

    @materials.setter
    def materials(self, values) -> None:
        self.materials_json = json.dumps([str(v) for v in (values or [])])

    @property
    def images(self) -> list:
        return self._load_list(self.images_json)

    @images.setter
    def images(self, values) -> None:
        self.images_json = json.dumps([str(v) for v in (values or [])])

    def to_dict(self, *, include_category: bool = True) -> dict:
        payload = {
            "id": int(self.id),
            "name": self.name or "",
            "styleCode": self.style_code or "",
            "description": self.description or "",
            "price": float(self.price or 0),
            "stock": int(self.stock or 0),
            "categoryId": int(self.category_id) if self.category_id is not None else None,
            "materials": self.materials,
            "dimensions": self.dimensions,
            "careInstructions": self.care_instructions,
            "images": self.images,
            "isActive": bool(self.is_active),
            "isFeatured": bool(self.is_featured),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_category:
            payload["category"] = self.category.to_dict() if self.category is not None else None
        return payload
