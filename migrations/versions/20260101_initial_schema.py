"""
Initial schema: tenant/identity, CRM, sales and client portal tables.

Revision ID: 20260101_initial_schema
Revises:
Create Date: 2026-01-01
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20260101_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create all tables defined in SQLAlchemy metadata."""
    from diamante_crm.db.base import Base
    from diamante_crm.db import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.create_all(bind=bind)


def downgrade():
    """Drop all tables defined in SQLAlchemy metadata."""
    from diamante_crm.db.base import Base
    from diamante_crm.db import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind)
