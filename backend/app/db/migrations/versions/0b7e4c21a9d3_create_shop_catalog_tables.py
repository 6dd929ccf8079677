"""create shops and catalog tables

Revision ID: 0b7e4c21a9d3
Revises:
Create Date: 2026-10-12 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '0b7e4c21a9d3'
down_revision = None
branch_labels = None
depends_on = None


JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'shops',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('consumer_key', sa.String(length=500), nullable=False),
        sa.Column('consumer_secret', sa.String(length=500), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('last_connection_check_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_connection_ok', sa.Boolean(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('url', name='uq_shops_url'),
    )
    op.create_index('ix_shops_updated_at', 'shops', ['updated_at'])

    op.create_table(
        'categories',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('shop_id', sa.Uuid(), sa.ForeignKey('shops.id', ondelete='CASCADE'), nullable=False),
        sa.Column('woocommerce_id', sa.String(length=64), nullable=False),
        sa.Column('parent_id', sa.Uuid(), sa.ForeignKey('categories.id', ondelete='SET NULL'), nullable=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('slug', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('image', sa.Text(), nullable=True),
        sa.Column('menu_order', sa.Integer(), nullable=False, server_default=sa.text('0')),
        *_timestamps(),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('shop_id', 'woocommerce_id', name='uq_categories_shop_woo'),
    )
    op.create_index('ix_categories_parent_id', 'categories', ['parent_id'])
    op.create_index('ix_categories_slug', 'categories', ['slug'])

    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('shop_id', sa.Uuid(), sa.ForeignKey('shops.id', ondelete='CASCADE'), nullable=False),
        sa.Column('woocommerce_id', sa.String(length=64), nullable=False),
        sa.Column('sku', sa.String(length=255), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('slug', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('short_description', sa.Text(), nullable=True),
        sa.Column('base_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('regular_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('sale_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='draft'),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='simple'),
        sa.Column('manage_stock', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('stock_quantity', sa.Integer(), nullable=True),
        sa.Column('stock_status', sa.String(length=32), nullable=True),
        sa.Column('weight', sa.Numeric(8, 2), nullable=True),
        sa.Column('dimensions', JSON_TYPE, nullable=False),
        sa.Column('featured_image', sa.Text(), nullable=True),
        sa.Column('gallery_images', JSON_TYPE, nullable=False),
        sa.Column('woocommerce_data', JSON_TYPE, nullable=False),
        *_timestamps(),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('shop_id', 'woocommerce_id', name='uq_products_shop_woo'),
        sa.UniqueConstraint('shop_id', 'sku', name='uq_products_shop_sku'),
    )
    op.create_index('ix_products_status', 'products', ['status'])
    op.create_index('ix_products_type', 'products', ['type'])
    op.create_index('ix_products_last_synced_at', 'products', ['last_synced_at'])

    op.create_table(
        'product_categories',
        sa.Column('product_id', sa.Uuid(), sa.ForeignKey('products.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('category_id', sa.Uuid(), sa.ForeignKey('categories.id', ondelete='CASCADE'), primary_key=True),
    )
    op.create_index('ix_product_categories_category_id', 'product_categories', ['category_id'])

    op.create_table(
        'product_variants',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('product_id', sa.Uuid(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('woocommerce_id', sa.String(length=64), nullable=False),
        sa.Column('sku', sa.String(length=255), nullable=False),
        sa.Column('attributes', JSON_TYPE, nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=True),
        sa.Column('regular_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('sale_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('manage_stock', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('stock_quantity', sa.Integer(), nullable=True),
        sa.Column('stock_status', sa.String(length=32), nullable=True),
        sa.Column('weight', sa.Numeric(8, 2), nullable=True),
        sa.Column('dimensions', JSON_TYPE, nullable=False),
        sa.Column('image', sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('product_id', 'woocommerce_id', name='uq_product_variants_product_woo'),
    )
    op.create_index('ix_product_variants_sku', 'product_variants', ['sku'])


def downgrade() -> None:
    op.drop_index('ix_product_variants_sku', table_name='product_variants')
    op.drop_table('product_variants')
    op.drop_index('ix_product_categories_category_id', table_name='product_categories')
    op.drop_table('product_categories')
    op.drop_index('ix_products_last_synced_at', table_name='products')
    op.drop_index('ix_products_type', table_name='products')
    op.drop_index('ix_products_status', table_name='products')
    op.drop_table('products')
    op.drop_index('ix_categories_slug', table_name='categories')
    op.drop_index('ix_categories_parent_id', table_name='categories')
    op.drop_table('categories')
    op.drop_index('ix_shops_updated_at', table_name='shops')
    op.drop_table('shops')
