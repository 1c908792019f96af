"""Create ingestion storage: reference instruments, candles, prices, trades, task events."""

from __future__ import annotations

from alembic import op

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """
    Apply ingestion storage v1.

    Every fact table is keyed by its natural key so `INSERT ... ON CONFLICT DO NOTHING`
    gives write-once semantics; task events are append-only, one row per phase.
    """
    op.execute("CREATE SCHEMA IF NOT EXISTS invest")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS invest.instruments (
            instrument_id TEXT PRIMARY KEY,
            ticker TEXT NOT NULL,
            instrument_class TEXT NOT NULL,
            currency TEXT NOT NULL,
            exchange TEXT NOT NULL,
            CONSTRAINT invest_instruments_class_chk
                CHECK (instrument_class IN ('share', 'future', 'indicative'))
        )
        """
    )
    op.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_invest_instruments_class_currency
            ON invest.instruments (instrument_class, upper(currency))
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS invest.candles (
            instrument_id TEXT NOT NULL,
            ts TIMESTAMPTZ NOT NULL,
            candle_interval TEXT NOT NULL,
            open DOUBLE PRECISION NOT NULL,
            high DOUBLE PRECISION NOT NULL,
            low DOUBLE PRECISION NOT NULL,
            close DOUBLE PRECISION NOT NULL,
            volume BIGINT NOT NULL,
            is_complete BOOLEAN NOT NULL,
            PRIMARY KEY (instrument_id, ts, candle_interval),
            CONSTRAINT invest_candles_interval_chk
                CHECK (candle_interval IN ('minute', 'day')),
            CONSTRAINT invest_candles_prices_chk
                CHECK (open > 0 AND high > 0 AND low > 0 AND close > 0),
            CONSTRAINT invest_candles_volume_chk CHECK (volume >= 0)
        )
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS invest.session_prices (
            instrument_id TEXT NOT NULL,
            trade_date DATE NOT NULL,
            session_kind TEXT NOT NULL,
            price DOUBLE PRECISION NOT NULL,
            currency TEXT NOT NULL,
            exchange TEXT NOT NULL,
            instrument_class TEXT NOT NULL,
            PRIMARY KEY (instrument_id, trade_date, session_kind),
            CONSTRAINT invest_session_prices_kind_chk
                CHECK (session_kind IN ('morning_open', 'main_close', 'evening_close')),
            CONSTRAINT invest_session_prices_price_chk CHECK (price > 0)
        )
        """
    )
    op.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_invest_session_prices_date_kind
            ON invest.session_prices (trade_date, session_kind, instrument_id)
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS invest.last_trades (
            instrument_id TEXT NOT NULL,
            ts TIMESTAMPTZ NOT NULL,
            price DOUBLE PRECISION NOT NULL,
            quantity BIGINT NOT NULL,
            direction TEXT NOT NULL,
            exchange TEXT NOT NULL,
            PRIMARY KEY (instrument_id, ts),
            CONSTRAINT invest_last_trades_direction_chk
                CHECK (direction IN ('buy', 'sell', 'unspecified'))
        )
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS invest.ingestion_task_events (
            task_id TEXT NOT NULL,
            phase TEXT NOT NULL,
            stage_name TEXT NOT NULL,
            status TEXT NOT NULL,
            message TEXT NULL,
            duration_ms BIGINT NULL,
            recorded_at TIMESTAMPTZ NOT NULL,
            PRIMARY KEY (task_id, phase),
            CONSTRAINT invest_ingestion_task_events_phase_chk
                CHECK (phase IN ('start', 'end')),
            CONSTRAINT invest_ingestion_task_events_status_chk
                CHECK (status IN ('STARTED', 'COMPLETED', 'FAILED'))
        )
        """
    )
    op.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_invest_ingestion_task_events_recorded
            ON invest.ingestion_task_events (recorded_at)
        """
    )

    op.execute(
        """
        CREATE MATERIALIZED VIEW IF NOT EXISTS invest.daily_volume_aggregation AS
        SELECT
            c.instrument_id,
            (c.ts AT TIME ZONE 'Europe/Moscow')::date AS trade_date,
            SUM(c.volume) AS total_volume,
            COUNT(*) AS candle_count
        FROM invest.candles AS c
        WHERE c.candle_interval = 'minute'
        GROUP BY c.instrument_id, (c.ts AT TIME ZONE 'Europe/Moscow')::date
        """
    )
    op.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS uq_invest_daily_volume_aggregation
            ON invest.daily_volume_aggregation (instrument_id, trade_date)
        """
    )

    op.execute(
        """
        CREATE MATERIALIZED VIEW IF NOT EXISTS invest.today_volume_aggregation AS
        SELECT
            c.instrument_id,
            SUM(c.volume) AS total_volume,
            COUNT(*) AS candle_count,
            MAX(c.ts) AS last_candle_ts
        FROM invest.candles AS c
        WHERE c.candle_interval = 'minute'
          AND c.ts >= date_trunc('day', now() AT TIME ZONE 'Europe/Moscow')
                      AT TIME ZONE 'Europe/Moscow'
        GROUP BY c.instrument_id
        """
    )
    op.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS uq_invest_today_volume_aggregation
            ON invest.today_volume_aggregation (instrument_id)
        """
    )


def downgrade() -> None:
    """Drop ingestion storage v1 objects in reverse dependency order."""
    op.execute("DROP MATERIALIZED VIEW IF EXISTS invest.today_volume_aggregation")
    op.execute("DROP MATERIALIZED VIEW IF EXISTS invest.daily_volume_aggregation")
    op.execute("DROP TABLE IF EXISTS invest.ingestion_task_events")
    op.execute("DROP TABLE IF EXISTS invest.last_trades")
    op.execute("DROP TABLE IF EXISTS invest.session_prices")
    op.execute("DROP TABLE IF EXISTS invest.candles")
    op.execute("DROP TABLE IF EXISTS invest.instruments")
