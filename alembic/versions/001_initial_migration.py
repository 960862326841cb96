"""Initial migration - blockchain jobs

Revision ID: 001
Revises:
Create Date: 2025-06-02 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create enum types
    op.execute("CREATE TYPE chaineventtype AS ENUM ('CREATE_ORG_CONTRACT', 'CREATE_ASSET', 'LICENSE_ASSET', 'FUND_USER_WALLET', 'WITHDRAW_ORG_EARNINGS', 'GRANT_CREATOR_ROLE', 'REVOKE_CREATOR_ROLE', 'VERIFY_ASSET')")
    op.execute("CREATE TYPE blockchainjobstatus AS ENUM ('QUEUED', 'SUBMITTED', 'SUCCESS', 'ERROR')")

    # Create blockchain_jobs table
    op.create_table('blockchain_jobs',
        sa.Column('id', sa.String(length=36), nullable=False, comment='Job id, also used as the queue message id'),
        sa.Column('idempotency_key', sa.String(length=255), nullable=False, comment='Caller-supplied deduplication key'),
        sa.Column('event_type', postgresql.ENUM('CREATE_ORG_CONTRACT', 'CREATE_ASSET', 'LICENSE_ASSET', 'FUND_USER_WALLET', 'WITHDRAW_ORG_EARNINGS', 'GRANT_CREATOR_ROLE', 'REVOKE_CREATOR_ROLE', 'VERIFY_ASSET', name='chaineventtype', create_type=False), nullable=False, comment='Business event driving the transaction sequence'),
        sa.Column('payload_json', sa.JSON(), nullable=False, comment='Event payload including the caller txId'),
        sa.Column('status', postgresql.ENUM('QUEUED', 'SUBMITTED', 'SUCCESS', 'ERROR', name='blockchainjobstatus', create_type=False), nullable=False, comment='Lifecycle status'),
        sa.Column('error_message', sa.Text(), nullable=True, comment='Failure cause when status is ERROR'),
        sa.Column('retry_count', sa.Integer(), nullable=False, comment='Number of processing attempts started'),
        sa.Column('finalized_at', sa.DateTime(timezone=True), nullable=True, comment='When a terminal status was reached'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key')
    )

    # Create indexes
    op.create_index('idx_blockchain_job_status_created', 'blockchain_jobs', ['status', 'created_at'], unique=False)
    op.create_index('idx_blockchain_job_event_type', 'blockchain_jobs', ['event_type'], unique=False)


def downgrade() -> None:
    # Drop indexes
    op.drop_index('idx_blockchain_job_event_type', table_name='blockchain_jobs')
    op.drop_index('idx_blockchain_job_status_created', table_name='blockchain_jobs')

    # Drop tables
    op.drop_table('blockchain_jobs')

    # Drop enum types
    op.execute("DROP TYPE IF EXISTS blockchainjobstatus")
    op.execute("DROP TYPE IF EXISTS chaineventtype")
