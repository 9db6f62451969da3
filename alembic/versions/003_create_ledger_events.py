"""003: create ledger_events table

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE ledger_events (
            id                  BIGSERIAL       PRIMARY KEY,
            entity_id           VARCHAR(64)     NOT NULL REFERENCES entities (id),
            event_type          VARCHAR(30)     NOT NULL,
            trigger_event_id    VARCHAR(64),
            trigger_event_type  VARCHAR(20),
            event_date          TIMESTAMPTZ     NOT NULL,
            market_cap_before   BIGINT          NOT NULL,
            market_cap_after    BIGINT          NOT NULL,
            share_price_before  BIGINT          NOT NULL,
            share_price_after   BIGINT          NOT NULL,
            shares_outstanding  BIGINT          NOT NULL,
            price_impact        BIGINT          NOT NULL DEFAULT 0,
            quantity            BIGINT          NOT NULL DEFAULT 0,
            trade_amount        BIGINT          NOT NULL DEFAULT 0,
            holder_id           VARCHAR(64),
            opponent_entity_id  VARCHAR(64),
            description         VARCHAR(500)    NOT NULL DEFAULT '',
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT clock_timestamp(),
            CONSTRAINT ck_ledger_event_type CHECK (
                event_type IN (
                    'initial_state',
                    'share_purchase', 'share_sale',
                    'match_win', 'match_loss', 'match_draw'
                )
            ),
            CONSTRAINT ck_ledger_trigger_type CHECK (
                trigger_event_type IS NULL
                OR trigger_event_type IN ('fixture', 'order', 'manual')
            ),
            CONSTRAINT ck_ledger_trigger_required CHECK (
                event_type = 'initial_state' OR trigger_event_id IS NOT NULL
            ),
            CONSTRAINT ck_ledger_cap_after_gte_0 CHECK (market_cap_after >= 0),
            CONSTRAINT ck_ledger_trade_quantity CHECK (
                (event_type = 'share_purchase' AND quantity > 0)
                OR (event_type = 'share_sale' AND quantity < 0)
                OR (event_type NOT IN ('share_purchase', 'share_sale')
                    AND quantity = 0 AND trade_amount = 0)
            )
        );
    """)
    # Idempotency: one initial/match row per entity and trigger.
    op.execute("""
        CREATE UNIQUE INDEX uq_ledger_events_trigger
        ON ledger_events (entity_id, trigger_event_id)
        WHERE event_type IN ('initial_state', 'match_win', 'match_loss', 'match_draw')
          AND trigger_event_id IS NOT NULL;
    """)
    op.execute(
        "CREATE INDEX idx_ledger_events_timeline ON ledger_events (entity_id, event_date, id);"
    )
    op.execute("""
        CREATE INDEX idx_ledger_events_holder
        ON ledger_events (holder_id, entity_id)
        WHERE holder_id IS NOT NULL;
    """)
    op.execute("""
        CREATE INDEX idx_ledger_events_trigger
        ON ledger_events (trigger_event_id)
        WHERE trigger_event_id IS NOT NULL;
    """)
    op.execute("""
        CREATE TRIGGER trg_ledger_events_append_only
        BEFORE UPDATE ON ledger_events
        FOR EACH ROW EXECUTE FUNCTION fn_forbid_update();
    """)
    op.execute(
        "COMMENT ON TABLE ledger_events IS "
        "'Valuation ledger: append-only, rows deleted only by admin reset. "
        "All amounts in cents';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS ledger_events CASCADE;")
