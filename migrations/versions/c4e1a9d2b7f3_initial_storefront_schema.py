"""initial storefront schema

Revision ID: c4e1a9d2b7f3
Revises:
Create Date: 2026-10-16 09:12:41.508213

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c4e1a9d2b7f3'
down_revision = None
branch_labels = None
depends_on = None


def _ensure_indexes(insp, table, columns):
    try:
        existing = {i['name'] for i in insp.get_indexes(table)}
    except Exception:
        existing = set()
    for col in columns:
        name = f'ix_{table}_{col}'
        if name not in existing:
            op.create_index(name, table, [col])


def _timestamps():
    return (
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    tables = set(insp.get_table_names())

    if 'users' not in tables:
        op.create_table(
            'users',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('email', sa.String(length=255), nullable=False, unique=True),
            sa.Column('password_hash', sa.String(length=255), nullable=False),
            sa.Column('first_name', sa.String(length=80), nullable=False),
            sa.Column('last_name', sa.String(length=80), nullable=False),
            sa.Column('phone', sa.String(length=32), nullable=True),
            sa.Column('role', sa.String(length=16), nullable=False),
            *_timestamps(),
        )

    if 'refresh_tokens' not in tables:
        op.create_table(
            'refresh_tokens',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
            sa.Column('token_hash', sa.String(length=128), nullable=False, unique=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('expires_at', sa.DateTime(), nullable=False),
            sa.Column('revoked_at', sa.DateTime(), nullable=True),
            sa.Column('device_id', sa.String(length=128), nullable=True),
        )

    if 'categories' not in tables:
        op.create_table(
            'categories',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=120), nullable=False),
            sa.Column('slug', sa.String(length=140), nullable=False, unique=True),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('image_url', sa.String(length=1024), nullable=True),
            sa.Column('order', sa.Integer(), nullable=False, server_default='0'),
            *_timestamps(),
        )

    if 'products' not in tables:
        op.create_table(
            'products',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=200), nullable=False),
            sa.Column('style_code', sa.String(length=64), nullable=False, unique=True),
            sa.Column('description', sa.Text(), nullable=False),
            sa.Column('price', sa.Numeric(12, 2), nullable=False),
            sa.Column('stock', sa.Integer(), nullable=False),
            sa.Column('category_id', sa.Integer(), sa.ForeignKey('categories.id'), nullable=False),
            sa.Column('materials_json', sa.Text(), nullable=False),
            sa.Column('images_json', sa.Text(), nullable=False),
            sa.Column('dimensions', sa.String(length=200), nullable=True),
            sa.Column('care_instructions', sa.Text(), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('is_featured', sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(),
            sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
        )

    if 'addresses' not in tables:
        op.create_table(
            'addresses',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
            sa.Column('full_name', sa.String(length=160), nullable=False),
            sa.Column('phone', sa.String(length=32), nullable=False),
            sa.Column('address_line1', sa.String(length=255), nullable=False),
            sa.Column('address_line2', sa.String(length=255), nullable=True),
            sa.Column('city', sa.String(length=120), nullable=False),
            sa.Column('state', sa.String(length=120), nullable=False),
            sa.Column('zip_code', sa.String(length=20), nullable=False),
            sa.Column('country', sa.String(length=80), nullable=False),
            sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(),
        )

    if 'cart_items' not in tables:
        op.create_table(
            'cart_items',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
            sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
            sa.Column('quantity', sa.Integer(), nullable=False),
            *_timestamps(),
            sa.UniqueConstraint('user_id', 'product_id', name='uq_cart_items_user_product'),
        )

    if 'wishlist_items' not in tables:
        op.create_table(
            'wishlist_items',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
            sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('user_id', 'product_id', name='uq_wishlist_items_user_product'),
        )

    if 'device_tokens' not in tables:
        op.create_table(
            'device_tokens',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('token', sa.String(length=512), nullable=False, unique=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
            sa.Column('platform', sa.String(length=16), nullable=False),
            *_timestamps(),
        )

    if 'orders' not in tables:
        op.create_table(
            'orders',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('order_number', sa.String(length=40), nullable=False, unique=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('address_id', sa.Integer(), sa.ForeignKey('addresses.id'), nullable=False),
            sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
            sa.Column('shipping', sa.Numeric(12, 2), nullable=False),
            sa.Column('tax', sa.Numeric(12, 2), nullable=False),
            sa.Column('total', sa.Numeric(12, 2), nullable=False),
            sa.Column('status', sa.String(length=16), nullable=False),
            sa.Column('payment_status', sa.String(length=16), nullable=False),
            sa.Column('payment_method', sa.String(length=16), nullable=False),
            sa.Column('payment_reference', sa.String(length=128), nullable=True),
            sa.Column('provider_transaction_id', sa.String(length=128), nullable=True),
            sa.Column('customer_email', sa.String(length=255), nullable=False),
            sa.Column('customer_name', sa.String(length=200), nullable=False),
            sa.Column('tracking_number', sa.String(length=120), nullable=True),
            sa.Column('carrier', sa.String(length=80), nullable=True),
            sa.Column('stock_review_required', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('paid_at', sa.DateTime(), nullable=True),
            *_timestamps(),
        )

    if 'order_items' not in tables:
        op.create_table(
            'order_items',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
            sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
            sa.Column('quantity', sa.Integer(), nullable=False),
            sa.Column('price', sa.Numeric(12, 2), nullable=False),
        )

    if 'order_status_history' not in tables:
        op.create_table(
            'order_status_history',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
            sa.Column('status', sa.String(length=16), nullable=False),
            sa.Column('notes', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )

    if 'webhook_events' not in tables:
        op.create_table(
            'webhook_events',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('provider', sa.String(length=32), nullable=False),
            sa.Column('event_id', sa.String(length=128), nullable=False),
            sa.Column('event_type', sa.String(length=64), nullable=True),
            sa.Column('reference', sa.String(length=128), nullable=True),
            sa.Column('status', sa.String(length=32), nullable=False),
            sa.Column('processed_at', sa.DateTime(), nullable=True),
            sa.Column('request_id', sa.String(length=64), nullable=True),
            sa.Column('payload_hash', sa.String(length=128), nullable=True),
            sa.Column('error', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('provider', 'event_id', name='uq_webhook_events_provider_event'),
        )

    if 'idempotency_keys' not in tables:
        op.create_table(
            'idempotency_keys',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('key', sa.String(length=128), nullable=False),
            sa.Column('scope', sa.String(length=128), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=True),
            sa.Column('request_hash', sa.String(length=64), nullable=False),
            sa.Column('response_json', sa.Text(), nullable=True),
            sa.Column('status_code', sa.Integer(), nullable=False),
            *_timestamps(),
            sa.UniqueConstraint('scope', 'key', name='uq_idempotency_scope_key'),
        )

    insp = sa.inspect(bind)
    _ensure_indexes(insp, 'users', ['email'])
    _ensure_indexes(insp, 'refresh_tokens', ['user_id', 'token_hash', 'expires_at', 'revoked_at'])
    _ensure_indexes(insp, 'categories', ['slug'])
    _ensure_indexes(insp, 'products', ['style_code', 'category_id', 'created_at'])
    _ensure_indexes(insp, 'addresses', ['user_id'])
    _ensure_indexes(insp, 'cart_items', ['user_id', 'product_id'])
    _ensure_indexes(insp, 'wishlist_items', ['user_id', 'product_id'])
    _ensure_indexes(insp, 'device_tokens', ['token', 'user_id'])
    _ensure_indexes(insp, 'orders', ['order_number', 'user_id', 'address_id', 'status', 'payment_status', 'payment_reference', 'created_at'])
    _ensure_indexes(insp, 'order_items', ['order_id', 'product_id'])
    _ensure_indexes(insp, 'order_status_history', ['order_id'])
    _ensure_indexes(insp, 'idempotency_keys', ['key'])


def downgrade():
    for table in (
        'idempotency_keys',
        'webhook_events',
        'order_status_history',
        'order_items',
        'orders',
        'device_tokens',
        'wishlist_items',
        'cart_items',
        'addresses',
        'products',
        'categories',
        'refresh_tokens',
        'users',
    ):
        op.drop_table(table)
