"""create_gallery_and_upload_tables

Revision ID: 3c9e2a71b5d4
Revises:
Create Date: 2026-10-18 09:12:40.318220

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c9e2a71b5d4'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'gallery_images',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('owner_type', sa.String(length=20), nullable=False, server_default='project'),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('image_url', sa.String(), nullable=False),
        sa.Column('caption', sa.String(), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=True),
        sa.Column('is_feature', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(op.f('ix_gallery_images_id'), 'gallery_images', ['id'], unique=False)
    op.create_index(op.f('ix_gallery_images_owner_type'), 'gallery_images', ['owner_type'], unique=False)
    op.create_index(op.f('ix_gallery_images_owner_id'), 'gallery_images', ['owner_id'], unique=False)
    # Not unique: an interrupted swap can leave two images with the same order
    op.create_index(op.f('ix_gallery_images_display_order'), 'gallery_images', ['display_order'], unique=False)

    op.create_table(
        'uploaded_files',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('session_id', sa.String(length=64), nullable=False),
        sa.Column('url', sa.String(), nullable=False),
        sa.Column('public_id', sa.String(), nullable=True),
        sa.Column('committed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(op.f('ix_uploaded_files_id'), 'uploaded_files', ['id'], unique=False)
    op.create_index(op.f('ix_uploaded_files_session_id'), 'uploaded_files', ['session_id'], unique=False)
    op.create_index(op.f('ix_uploaded_files_url'), 'uploaded_files', ['url'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_uploaded_files_url'), table_name='uploaded_files')
    op.drop_index(op.f('ix_uploaded_files_session_id'), table_name='uploaded_files')
    op.drop_index(op.f('ix_uploaded_files_id'), table_name='uploaded_files')
    op.drop_table('uploaded_files')

    op.drop_index(op.f('ix_gallery_images_display_order'), table_name='gallery_images')
    op.drop_index(op.f('ix_gallery_images_owner_id'), table_name='gallery_images')
    op.drop_index(op.f('ix_gallery_images_owner_type'), table_name='gallery_images')
    op.drop_index(op.f('ix_gallery_images_id'), table_name='gallery_images')
    op.drop_table('gallery_images')
