"""001: create snapshot and ledger guard functions

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Every snapshot write is a compare-and-swap that bumps version by exactly one.
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_entities_touch()
        RETURNS TRIGGER AS $$
        BEGIN
            IF NEW.version <> OLD.version + 1 THEN
                RAISE EXCEPTION 'entity % version must advance by 1 (% -> %)',
                    OLD.id, OLD.version, NEW.version;
            END IF;
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    # Ledger rows are never edited; DELETE stays allowed for the admin reset.
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_forbid_update()
        RETURNS TRIGGER AS $$
        BEGIN
            RAISE EXCEPTION '% is append-only', TG_TABLE_NAME;
        END;
        $$ LANGUAGE plpgsql;
    """)


def downgrade() -> None:
    op.execute("DROP FUNCTION IF EXISTS fn_forbid_update();")
    op.execute("DROP FUNCTION IF EXISTS fn_entities_touch();")
