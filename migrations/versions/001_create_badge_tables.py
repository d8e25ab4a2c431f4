"""Create users, employee_cards and employee_id_sequences tables

Revision ID: 001_create_badge_tables
Revises:
Create Date: 2026-10-19

Uses IF NOT EXISTS since these tables may already exist from a
prior create_all() run.
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001_create_badge_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id VARCHAR PRIMARY KEY,
            firebase_uid VARCHAR NOT NULL UNIQUE,
            email VARCHAR UNIQUE,
            display_name VARCHAR,
            role VARCHAR(32) NOT NULL DEFAULT 'employee',
            is_active BOOLEAN DEFAULT true,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT now(),
            updated_at TIMESTAMP WITH TIME ZONE
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_users_firebase_uid ON users(firebase_uid)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS employee_cards (
            id VARCHAR PRIMARY KEY,
            employee_id VARCHAR(32) NOT NULL UNIQUE,
            user_id VARCHAR REFERENCES users(id) ON DELETE SET NULL,
            name VARCHAR(200) NOT NULL,
            department VARCHAR(200) NOT NULL,
            workplace VARCHAR(200) NOT NULL,
            company_name VARCHAR(200),
            latitude FLOAT,
            longitude FLOAT,
            status VARCHAR(16) NOT NULL DEFAULT 'active',
            issued_at TIMESTAMP WITH TIME ZONE NOT NULL,
            expires_at TIMESTAMP WITH TIME ZONE NOT NULL,
            revoked_at TIMESTAMP WITH TIME ZONE,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT now(),
            updated_at TIMESTAMP WITH TIME ZONE
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_employee_cards_employee_id ON employee_cards(employee_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_employee_cards_user_id ON employee_cards(user_id)")

    # One counter row per year; last_value is the highest sequence handed out
    op.execute("""
        CREATE TABLE IF NOT EXISTS employee_id_sequences (
            year INTEGER PRIMARY KEY,
            last_value INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMP WITH TIME ZONE DEFAULT now()
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS employee_id_sequences")
    op.execute("DROP TABLE IF EXISTS employee_cards")
    op.execute("DROP TABLE IF EXISTS users")
