from datetime import datetime

from myzo.extensions import db


class WishlistItem(db.Model):
    __tablename__ = "wishlist_items"
    __table_args__ = (
        db.UniqueConstraint("user_id", "product_id", name="uq_wishlist_items_user_product"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    product = db.relationship("Product", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "productId": int(self.product_id),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "product": self.product.to_dict() if self.product is not None else None,
        }
