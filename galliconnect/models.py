from dataclasses import asdict, fields

from .domain import Order, OrderStatus, Product, Shop, ShopType, User, UserRole, as_utc
from .extensions import db


def _enum_column(enum_cls, name):
    return db.Enum(
        enum_cls,
        name=name,
        native_enum=False,
        values_callable=lambda members: [member.value for member in members],
    )


class RecordMixin:
    """Maps a table row to and from its domain dataclass (same field names)."""

    __domain__ = None

    def to_domain(self):
        values = {f.name: getattr(self, f.name) for f in fields(self.__domain__)}
        return self.__domain__.from_dict(values)

    @classmethod
    def from_domain(cls, obj):
        return cls(**asdict(obj))


class UserRecord(RecordMixin, db.Model):
    __tablename__ = 'users'
    __domain__ = User

    id = db.Column(db.String(64), primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    role = db.Column(_enum_column(UserRole, 'user_role'), nullable=False)
    contact = db.Column(db.String(50), default='')
    address = db.Column(db.Text, default='')
    landmarks = db.Column(db.Text)
    is_verified = db.Column(db.Boolean, default=False, nullable=False)
    is_email_verified = db.Column(db.Boolean, default=False, nullable=False)
    password_hash = db.Column(db.String(255))


class ShopRecord(RecordMixin, db.Model):
    __tablename__ = 'shops'
    __domain__ = Shop

    id = db.Column(db.String(80), primary_key=True)
    owner_id = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(_enum_column(ShopType, 'shop_type'), nullable=False)
    area = db.Column(db.String(120), default='')
    address = db.Column(db.Text, default='')
    is_open = db.Column(db.Boolean, default=False, nullable=False)
    rating = db.Column(db.Float, default=4.5)
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)


class ProductRecord(RecordMixin, db.Model):
    __tablename__ = 'products'
    __domain__ = Product

    id = db.Column(db.String(64), primary_key=True)
    shop_id = db.Column(db.String(80), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Float, nullable=False)
    quantity = db.Column(db.String(80), default='')
    image = db.Column(db.String(512), default='')
    in_stock = db.Column(db.Boolean, default=True, nullable=False)


class OrderRecord(RecordMixin, db.Model):
    __tablename__ = 'orders'
    __domain__ = Order

    id = db.Column(db.String(64), primary_key=True)
    customer_id = db.Column(db.String(64), nullable=False)
    customer_name = db.Column(db.String(255))
    customer_address = db.Column(db.Text)
    customer_contact = db.Column(db.String(50))
    shop_id = db.Column(db.String(80), nullable=False)
    shop_name = db.Column(db.String(255))
    items = db.Column(db.JSON, nullable=False, default=list)
    status = db.Column(_enum_column(OrderStatus, 'order_status'), nullable=False, default=OrderStatus.ORDERED)
    total = db.Column(db.Float, nullable=False, default=0)
    platform_charge = db.Column(db.Float, nullable=False, default=0)
    delivery_charge = db.Column(db.Float, nullable=False, default=0)
    grand_total = db.Column(db.Float, nullable=False, default=0)
    delivery_slot = db.Column(db.String(120))
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)


class PendingVerificationRecord(db.Model):
    """An issued verification code waiting for the user; deleted once used up."""

    __tablename__ = 'pending_verifications'

    id = db.Column(db.String(64), primary_key=True)
    user = db.Column(db.JSON, nullable=False)
    code_hash = db.Column(db.String(255), nullable=False)
    issued_at = db.Column(db.DateTime(timezone=True), nullable=False)
    attempts = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            'id': self.id,
            'user': self.user,
            'code_hash': self.code_hash,
            'issued_at': as_utc(self.issued_at).isoformat(),
            'attempts': self.attempts,
        }

    @classmethod
    def from_dict(cls, row):
        return cls(
            id=row['id'],
            user=row['user'],
            code_hash=row['code_hash'],
            issued_at=as_utc(row['issued_at']),
            attempts=int(row.get('attempts', 0)),
        )


class OrderFeedState(db.Model):
    """Single row whose version goes up with every committed order write."""

    __tablename__ = 'order_feed_state'

    id = db.Column(db.Integer, primary_key=True)
    version = db.Column(db.Integer, nullable=False, default=0)
