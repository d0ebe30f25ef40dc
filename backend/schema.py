import json
from sqlalchemy import Column, Integer, String, Float, Boolean, Text, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from base import Base


class Coupon(Base):
    __tablename__ = 'coupons'
    coupon_id = Column(String, primary_key=True)
    code = Column(String, nullable=False, unique=True, index=True)
    discount_type = Column(String, nullable=False)
    value = Column(Float, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime)
    max_uses = Column(Integer, nullable=False, default=0)
    used_count = Column(Integer, nullable=False, default=0)
    min_purchase_amount = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class Cart(Base):
    __tablename__ = 'carts'
    cart_id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, unique=True, index=True)
    # Weak reference: re-fetched and re-validated on every recompute
    applied_coupon_id = Column(String, ForeignKey('coupons.coupon_id', ondelete='SET NULL'))
    subtotal = Column(Float, nullable=False, default=0.0)
    discount = Column(Float, nullable=False, default=0.0)
    total_amount = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)

    items = relationship(
        'CartItem',
        order_by='CartItem.position',
        cascade='all, delete-orphan',
        back_populates='cart',
    )


class CartItem(Base):
    __tablename__ = 'cart_items'
    __table_args__ = (
        UniqueConstraint('cart_id', 'item_id', 'item_type', name='uq_cart_item'),
    )
    cart_item_id = Column(String, primary_key=True)
    cart_id = Column(String, ForeignKey('carts.cart_id'), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    item_id = Column(String, nullable=False)
    item_type = Column(String, nullable=False)
    unit_price = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)

    cart = relationship('Cart', back_populates='items')

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity


class Course(Base):
    __tablename__ = 'courses'
    course_id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    price = Column(Float, nullable=False, default=0.0)
    is_published = Column(Boolean, nullable=False, default=True)


class Product(Base):
    __tablename__ = 'products'
    product_id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    price = Column(Float, nullable=False, default=0.0)
    is_published = Column(Boolean, nullable=False, default=True)


class WishlistEntry(Base):
    __tablename__ = 'wishlists'
    __table_args__ = (
        UniqueConstraint('user_id', 'course_id', name='uq_wishlist_course'),
    )
    entry_id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    course_id = Column(String, ForeignKey('courses.course_id'), nullable=False)
    added_at = Column(DateTime)


class ActivityLog(Base):
    __tablename__ = 'activity_logs'
    log_id = Column(String, primary_key=True)
    timestamp = Column(DateTime, nullable=False)
    actor = Column(String, nullable=False)
    action = Column(String, nullable=False)
    entity_type = Column(String, nullable=False)
    entity_id = Column(String)
    details = Column(Text)

    def to_dict(self):
        return {
            'log_id': self.log_id,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'actor': self.actor,
            'action': self.action,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'details': json.loads(self.details) if self.details else None,
        }
