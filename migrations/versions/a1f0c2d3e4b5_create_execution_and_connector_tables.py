"""create execution and connector tables

Revision ID: a1f0c2d3e4b5
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1f0c2d3e4b5'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('connectors',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('base_url', sa.String(length=2048), nullable=False),
        sa.Column('auth_type', sa.String(length=20), nullable=False),
        # Encrypted: {"_encrypted": "..."}
        sa.Column('auth_config', sa.JSON(), nullable=False),
        sa.Column('headers', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )

    op.create_table('executions',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('flow_id', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=False),
        sa.Column('duration_ms', sa.Integer(), nullable=False),
        sa.Column('final_variables', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_executions_flow_id', 'executions', ['flow_id'], unique=False)
    op.create_index('ix_executions_status', 'executions', ['status'], unique=False)
    op.create_index('ix_executions_created_at', 'executions', ['created_at'], unique=False)
    op.create_index('idx_executions_flow_status', 'executions', ['flow_id', 'status'], unique=False)

    op.create_table('execution_log_records',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('execution_id', sa.String(length=64), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('severity', sa.String(length=10), nullable=False),
        sa.Column('node_id', sa.String(length=255), nullable=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['execution_id'], ['executions.id'], ondelete='CASCADE')
    )
    op.create_index('ix_execution_log_records_severity', 'execution_log_records', ['severity'], unique=False)
    op.create_index('ix_execution_log_records_node_id', 'execution_log_records', ['node_id'], unique=False)
    op.create_index(
        'idx_execution_log_records_exec_position', 'execution_log_records', ['execution_id', 'position'], unique=False
    )


def downgrade():
    op.drop_index('idx_execution_log_records_exec_position', table_name='execution_log_records')
    op.drop_index('ix_execution_log_records_node_id', table_name='execution_log_records')
    op.drop_index('ix_execution_log_records_severity', table_name='execution_log_records')
    op.drop_table('execution_log_records')

    op.drop_index('idx_executions_flow_status', table_name='executions')
    op.drop_index('ix_executions_created_at', table_name='executions')
    op.drop_index('ix_executions_status', table_name='executions')
    op.drop_index('ix_executions_flow_id', table_name='executions')
    op.drop_table('executions')

    op.drop_table('connectors')
