"""002: create entities table

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE entities (
            id                  VARCHAR(64)     PRIMARY KEY,
            name                VARCHAR(200)    NOT NULL,
            shares_outstanding  BIGINT          NOT NULL,
            market_cap          BIGINT          NOT NULL,
            initial_market_cap  BIGINT          NOT NULL,
            launch_price        BIGINT          NOT NULL,
            version             BIGINT          NOT NULL DEFAULT 0,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_entities_shares_gte_0 CHECK (shares_outstanding >= 0),
            CONSTRAINT ck_entities_market_cap_gte_0 CHECK (market_cap >= 0),
            CONSTRAINT ck_entities_initial_cap_gte_0 CHECK (initial_market_cap >= 0)
        );
    """)
    op.execute("CREATE INDEX idx_entities_market_cap ON entities (market_cap DESC);")
    op.execute("""
        CREATE TRIGGER trg_entities_touch
        BEFORE UPDATE ON entities
        FOR EACH ROW EXECUTE FUNCTION fn_entities_touch();
    """)
    op.execute(
        "COMMENT ON TABLE entities IS "
        "'Snapshot cache of each club valuation; ledger_events is the source of truth. "
        "All amounts in cents';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS entities CASCADE;")
