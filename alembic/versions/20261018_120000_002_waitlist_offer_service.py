"""Remember the service of the slot offered to a waitlist entry.

Revision ID: 002
Revises: 001
Create Date: 2026-10-18 12:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

FK_NAME = "fk_waitlist_entries_available_service_id_professional_services"


def upgrade() -> None:
    with op.batch_alter_table("waitlist_entries") as batch_op:
        batch_op.add_column(sa.Column("available_service_id", sa.String(36), nullable=True))
        batch_op.create_foreign_key(
            FK_NAME,
            "professional_services",
            ["available_service_id"],
            ["id"],
            ondelete="SET NULL",
        )


def downgrade() -> None:
    with op.batch_alter_table("waitlist_entries") as batch_op:
        batch_op.drop_constraint(FK_NAME, type_="foreignkey")
        batch_op.drop_column("available_service_id")
