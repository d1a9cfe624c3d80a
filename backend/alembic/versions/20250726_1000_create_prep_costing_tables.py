"""Create prep costing tables

Revision ID: 20250726_1000
Revises:
Create Date: 2025-07-26 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20250726_1000'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade():
    """Create ingredients, preps, menu items and the edges between them"""

    op.create_table(
        'ingredients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('name_de', sa.String(length=200), nullable=True),
        sa.Column('name_en', sa.String(length=200), nullable=True),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.Column('unit', sa.String(length=50), nullable=False),
        sa.Column('cost_per_unit', sa.Numeric(14, 6), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('cost_per_unit >= 0', name='ck_ingredient_cost_non_negative'),
    )
    op.create_index('ix_ingredients_id', 'ingredients', ['id'])
    op.create_index('ix_ingredients_name', 'ingredients', ['name'])

    op.create_table(
        'preps',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('name_de', sa.String(length=200), nullable=True),
        sa.Column('name_en', sa.String(length=200), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('description_de', sa.Text(), nullable=True),
        sa.Column('description_en', sa.Text(), nullable=True),
        sa.Column('batch_yield', sa.String(length=50), nullable=True),
        sa.Column('batch_yield_amount', sa.Numeric(12, 4), nullable=False),
        sa.Column('batch_yield_unit', sa.String(length=50), nullable=True),
        sa.Column('instructions', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('cost_per_batch', sa.Numeric(14, 6), nullable=False, server_default='0'),
        sa.Column('cost_per_unit', sa.Numeric(14, 6), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('batch_yield_amount > 0', name='ck_prep_batch_yield_positive'),
    )
    op.create_index('ix_preps_id', 'preps', ['id'])
    op.create_index('ix_preps_name', 'preps', ['name'])

    op.create_table(
        'prep_ingredients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('prep_id', sa.Integer(), nullable=False),
        sa.Column('ingredient_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 4), nullable=False),
        sa.Column('unit', sa.String(length=50), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['prep_id'], ['preps.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['ingredient_id'], ['ingredients.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('prep_id', 'ingredient_id', name='uq_prep_ingredient'),
        sa.CheckConstraint('quantity > 0', name='ck_prep_ingredient_quantity_positive'),
    )
    op.create_index('ix_prep_ingredients_id', 'prep_ingredients', ['id'])
    op.create_index('ix_prep_ingredients_prep_id', 'prep_ingredients', ['prep_id'])
    # Reverse index used by cost propagation
    op.create_index('ix_prep_ingredients_ingredient_id', 'prep_ingredients', ['ingredient_id'])

    op.create_table(
        'menu_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_menu_items_id', 'menu_items', ['id'])
    op.create_index('ix_menu_items_name', 'menu_items', ['name'])

    op.create_table(
        'menu_item_ingredients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('menu_item_id', sa.Integer(), nullable=False),
        sa.Column('ingredient_id', sa.Integer(), nullable=True),
        sa.Column('prep_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Numeric(12, 4), nullable=False),
        sa.Column('unit', sa.String(length=50), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['menu_item_id'], ['menu_items.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['ingredient_id'], ['ingredients.id']),
        sa.ForeignKeyConstraint(['prep_id'], ['preps.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            '(ingredient_id IS NOT NULL AND prep_id IS NULL) OR '
            '(ingredient_id IS NULL AND prep_id IS NOT NULL)',
            name='ck_menu_item_ingredient_single_source',
        ),
    )
    op.create_index('ix_menu_item_ingredients_id', 'menu_item_ingredients', ['id'])
    op.create_index('ix_menu_item_ingredients_menu_item_id', 'menu_item_ingredients', ['menu_item_id'])
    op.create_index('ix_menu_item_ingredients_ingredient_id', 'menu_item_ingredients', ['ingredient_id'])
    op.create_index('ix_menu_item_ingredients_prep_id', 'menu_item_ingredients', ['prep_id'])


def downgrade():
    """Drop prep costing tables"""
    op.drop_table('menu_item_ingredients')
    op.drop_table('menu_items')
    op.drop_table('prep_ingredients')
    op.drop_table('preps')
    op.drop_table('ingredients')
