"""add_broadcasts_and_catalog_fields

Revision ID: 8c2e4a1f6b30
Revises: 5b1f0c7d9e21
Create Date: 2026-10-20 10:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8c2e4a1f6b30'
down_revision: Union[str, Sequence[str], None] = '5b1f0c7d9e21'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Catalog: категории боксов и описание товаров
    op.add_column('boxes', sa.Column('category', sa.String(length=100), nullable=True))
    op.create_index(op.f('ix_boxes_category'), 'boxes', ['category'], unique=False)
    op.add_column('products', sa.Column('description', sa.Text(), nullable=True))
    op.create_index(op.f('ix_products_category'), 'products', ['category'], unique=False)

    # Broadcasts
    op.create_table('broadcasts',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False, comment='Title for admin panel'),
        sa.Column('message', sa.Text(), nullable=False, comment='Message text (HTML)'),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('buttons_json', sa.Text(), nullable=True, comment='Buttons as JSON [{label, start_app_param}]'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='draft'),
        sa.Column('total_recipients', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sent_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('failed_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('blocked_count', sa.Integer(), nullable=False, server_default='0', comment='Users who blocked the bot'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_broadcasts_status'), 'broadcasts', ['status'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_broadcasts_status'), table_name='broadcasts')
    op.drop_table('broadcasts')

    op.drop_index(op.f('ix_products_category'), table_name='products')
    op.drop_column('products', 'description')
    op.drop_index(op.f('ix_boxes_category'), table_name='boxes')
    op.drop_column('boxes', 'category')
