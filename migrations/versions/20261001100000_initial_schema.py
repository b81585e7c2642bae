"""Initial LastCall schema: accounts, recipients, blasts, coupons, metrics

Revision ID: lastcall_initial
Revises:
Create Date: 2026-10-01 10:00:00

"""
from alembic import op


# revision identifiers, used by Alembic.
revision = 'lastcall_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    op.execute("""
        CREATE TABLE accounts (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name VARCHAR(255) NOT NULL,
            slug VARCHAR(255) NOT NULL,
            phone_number VARCHAR(20),
            messaging_profile_id VARCHAR(255),
            email VARCHAR(255),
            coupons_enabled BOOLEAN NOT NULL DEFAULT FALSE,
            include_membership_question BOOLEAN NOT NULL DEFAULT FALSE,
            signup_enabled BOOLEAN NOT NULL DEFAULT TRUE,
            is_locked BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT accounts_slug_unique UNIQUE (slug),
            CONSTRAINT accounts_phone_unique UNIQUE (phone_number)
        )
    """)

    op.execute("""
        CREATE TABLE recipients (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            account_id UUID NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            name VARCHAR(255),
            phone_number VARCHAR(20),
            email VARCHAR(255),
            gender VARCHAR(50),
            birthdate DATE,
            membership_status VARCHAR(50),
            consent BOOLEAN NOT NULL DEFAULT FALSE,
            subscribe BOOLEAN NOT NULL DEFAULT TRUE,
            birthdate_confirmed BOOLEAN NOT NULL DEFAULT FALSE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT recipients_account_phone_unique UNIQUE (account_id, phone_number)
        )
    """)
    op.execute("""
        CREATE INDEX idx_recipients_eligible
        ON recipients(account_id)
        WHERE consent = TRUE AND subscribe = TRUE AND phone_number IS NOT NULL
    """)

    op.execute("""
        CREATE TABLE blasts (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            account_id UUID NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            message TEXT NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'draft'
                CHECK (status IN ('draft', 'scheduled', 'sending', 'sent', 'failed')),
            scheduled_date TIMESTAMPTZ,
            time_slot VARCHAR(20) CHECK (time_slot IN ('morning', 'afternoon', 'evening')),
            targeting JSONB NOT NULL DEFAULT '{}'::jsonb,
            delivery_stats JSONB,
            sent_at TIMESTAMPTZ,
            error TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX idx_blasts_due
        ON blasts(account_id, time_slot, scheduled_date)
        WHERE status = 'scheduled'
    """)

    op.execute("""
        CREATE TABLE coupons (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            account_id UUID NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            recipient_id UUID NOT NULL REFERENCES recipients(id) ON DELETE CASCADE,
            code VARCHAR(20) NOT NULL,
            coupon_type VARCHAR(50) NOT NULL DEFAULT 'welcome',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            expires_at TIMESTAMPTZ NOT NULL,
            used BOOLEAN NOT NULL DEFAULT FALSE
        )
    """)
    op.execute("CREATE INDEX idx_coupons_recipient_active ON coupons(recipient_id, expires_at) WHERE used = FALSE")

    op.execute("""
        CREATE TABLE metrics_snapshots (
            account_id UUID NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            name VARCHAR(50) NOT NULL,
            data JSONB NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            PRIMARY KEY (account_id, name)
        )
    """)


def downgrade():
    op.execute("DROP TABLE IF EXISTS metrics_snapshots")
    op.execute("DROP TABLE IF EXISTS coupons")
    op.execute("DROP TABLE IF EXISTS blasts")
    op.execute("DROP TABLE IF EXISTS recipients")
    op.execute("DROP TABLE IF EXISTS accounts")
