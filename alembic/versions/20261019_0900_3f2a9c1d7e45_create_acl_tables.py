"""create acl tables

Revision ID: 3f2a9c1d7e45
Revises:
Create Date: 2026-10-19 09:00:00.000000+00:00

"""
from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7e45'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

BIGINT_PK = sa.BigInteger().with_variant(sa.Integer(), 'sqlite')


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table(
        'acl_class',
        sa.Column('id', BIGINT_PK, autoincrement=True, nullable=False),
        sa.Column('class', sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_acl_class')),
        sa.UniqueConstraint('class', name=op.f('uq_acl_class_class')),
    )
    op.create_table(
        'acl_sid',
        sa.Column('id', BIGINT_PK, autoincrement=True, nullable=False),
        sa.Column('principal', sa.Boolean(), nullable=False),
        sa.Column('sid', sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_acl_sid')),
        sa.UniqueConstraint('sid', 'principal', name=op.f('uq_acl_sid_sid_principal')),
    )
    op.create_table(
        'acl_object_identity',
        sa.Column('id', BIGINT_PK, autoincrement=True, nullable=False),
        sa.Column('object_id_class', BIGINT_PK, nullable=False),
        sa.Column('object_id_identity', sa.BigInteger(), nullable=False),
        sa.Column('parent_object', BIGINT_PK, nullable=True),
        sa.Column('owner_sid', BIGINT_PK, nullable=False),
        sa.Column('entries_inheriting', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(
            ['object_id_class'],
            ['acl_class.id'],
            name=op.f('fk_acl_object_identity_object_id_class_acl_class'),
        ),
        sa.ForeignKeyConstraint(
            ['owner_sid'],
            ['acl_sid.id'],
            name=op.f('fk_acl_object_identity_owner_sid_acl_sid'),
        ),
        sa.ForeignKeyConstraint(
            ['parent_object'],
            ['acl_object_identity.id'],
            name=op.f('fk_acl_object_identity_parent_object_acl_object_identity'),
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_acl_object_identity')),
        sa.UniqueConstraint(
            'object_id_class',
            'object_id_identity',
            name=op.f('uq_acl_object_identity_object_id_class_object_id_identity'),
        ),
    )
    op.create_index(
        op.f('ix_acl_object_identity_parent_object'),
        'acl_object_identity',
        ['parent_object'],
        unique=False,
    )
    op.create_table(
        'acl_entry',
        sa.Column('id', BIGINT_PK, autoincrement=True, nullable=False),
        sa.Column('acl_object_identity', BIGINT_PK, nullable=False),
        sa.Column('ace_order', sa.Integer(), nullable=False),
        sa.Column('sid', BIGINT_PK, nullable=False),
        sa.Column('mask', sa.Integer(), nullable=False),
        sa.Column('granting', sa.Boolean(), nullable=False),
        sa.Column('audit_success', sa.Boolean(), nullable=False),
        sa.Column('audit_failure', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(
            ['acl_object_identity'],
            ['acl_object_identity.id'],
            name=op.f('fk_acl_entry_acl_object_identity_acl_object_identity'),
        ),
        sa.ForeignKeyConstraint(
            ['sid'],
            ['acl_sid.id'],
            name=op.f('fk_acl_entry_sid_acl_sid'),
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_acl_entry')),
        sa.UniqueConstraint(
            'acl_object_identity',
            'ace_order',
            name=op.f('uq_acl_entry_acl_object_identity_ace_order'),
        ),
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('acl_entry')
    op.drop_index(op.f('ix_acl_object_identity_parent_object'), table_name='acl_object_identity')
    op.drop_table('acl_object_identity')
    op.drop_table('acl_sid')
    op.drop_table('acl_class')
