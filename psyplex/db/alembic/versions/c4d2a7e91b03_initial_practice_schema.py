"""initial_practice_schema

Revision ID: c4d2a7e91b03
Revises:
Create Date: 2026-10-19 09:12:44.318021

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c4d2a7e91b03'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


_OWNED_THERAPISTS = "SELECT id FROM therapists WHERE principal_id = psyplex_principal()"
_OWNED_CLIENTS = (
    "SELECT c.id FROM clients c JOIN therapists t ON t.id = c.therapist_id "
    "WHERE t.principal_id = psyplex_principal()"
)

# table -> ownership predicate used for both USING and WITH CHECK
_POLICIES = {
    'therapists': "principal_id = psyplex_principal()",
    'clients': f"therapist_id IN ({_OWNED_THERAPISTS})",
    'sessions': f"therapist_id IN ({_OWNED_THERAPISTS})",
    'session_notes': f"therapist_id IN ({_OWNED_THERAPISTS})",
    'client_profiles': f"client_id IN ({_OWNED_CLIENTS})",
    'treatment_goals': f"client_id IN ({_OWNED_CLIENTS})",
    'progress_metrics': f"client_id IN ({_OWNED_CLIENTS})",
}


def upgrade() -> None:
    """Create the practice tables and, on PostgreSQL, their RLS policies."""
    op.create_table('therapists',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('principal_id', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('credentials', sa.String(length=255), nullable=True),
        sa.Column('specialties', sa.JSON(), nullable=True),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('profile_image_url', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('therapists', schema=None) as batch_op:
        batch_op.create_index('ix_therapists_principal_id', ['principal_id'], unique=True)

    op.create_table('clients',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('therapist_id', sa.UUID(), nullable=False),
        sa.Column('first_name', sa.String(length=255), nullable=False),
        sa.Column('last_name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('status', sa.Enum('NEW', 'ACTIVE', 'ON_HOLD', 'COMPLETED', name='clientstatus'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['therapist_id'], ['therapists.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('clients', schema=None) as batch_op:
        batch_op.create_index('ix_clients_therapist_id', ['therapist_id'], unique=False)

    op.create_table('client_profiles',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('client_id', sa.UUID(), nullable=False),
        sa.Column('date_of_birth', sa.Date(), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('occupation', sa.String(length=255), nullable=True),
        sa.Column('emergency_contact', sa.String(length=255), nullable=True),
        sa.Column('primary_concerns', sa.JSON(), nullable=True),
        sa.Column('therapy_type', sa.String(length=100), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_id')
    )

    op.create_table('sessions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('client_id', sa.UUID(), nullable=False),
        sa.Column('therapist_id', sa.UUID(), nullable=False),
        sa.Column('session_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('session_type', sa.Enum('IN_PERSON', 'VIRTUAL', name='sessiontype'), nullable=False),
        sa.Column('status', sa.Enum('SCHEDULED', 'COMPLETED', 'CANCELED', 'NO_SHOW', name='sessionstatus'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['therapist_id'], ['therapists.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('sessions', schema=None) as batch_op:
        batch_op.create_index('ix_sessions_client_id', ['client_id'], unique=False)
        batch_op.create_index('ix_sessions_therapist_date', ['therapist_id', 'session_date'], unique=False)

    op.create_table('session_notes',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('session_id', sa.UUID(), nullable=False),
        sa.Column('therapist_id', sa.UUID(), nullable=False),
        sa.Column('client_id', sa.UUID(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('content', sa.JSON(), nullable=False),
        sa.Column('therapy_type', sa.String(length=100), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['therapist_id'], ['therapists.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('session_notes', schema=None) as batch_op:
        batch_op.create_index('ix_session_notes_session_id', ['session_id'], unique=False)
        batch_op.create_index('ix_session_notes_client_id', ['client_id'], unique=False)

    op.create_table('treatment_goals',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('client_id', sa.UUID(), nullable=False),
        sa.Column('goal_description', sa.Text(), nullable=False),
        sa.Column('status', sa.Enum('NOT_STARTED', 'IN_PROGRESS', 'ACHIEVED', name='goalstatus'), nullable=False),
        sa.Column('target_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('treatment_goals', schema=None) as batch_op:
        batch_op.create_index('ix_treatment_goals_client_id', ['client_id'], unique=False)

    op.create_table('progress_metrics',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('client_id', sa.UUID(), nullable=False),
        sa.Column('metric_name', sa.String(length=100), nullable=False),
        sa.Column('metric_value', sa.Float(), nullable=False),
        sa.Column('date_recorded', sa.Date(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('progress_metrics', schema=None) as batch_op:
        batch_op.create_index('ix_progress_metrics_client_id', ['client_id'], unique=False)
        batch_op.create_index('ix_progress_metrics_client_name', ['client_id', 'metric_name'], unique=False)

    op.create_table('audit_logs',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=True),
        sa.Column('principal_id', sa.String(length=255), nullable=True),
        sa.Column('resource_type', sa.String(length=100), nullable=False),
        sa.Column('resource_id', sa.UUID(), nullable=True),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.create_index('ix_audit_logs_event_type', ['event_type'], unique=False)
        batch_op.create_index('ix_audit_logs_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_audit_logs_principal_id', ['principal_id'], unique=False)
        batch_op.create_index('ix_audit_logs_resource_type', ['resource_type'], unique=False)
        batch_op.create_index('ix_audit_logs_action', ['action'], unique=False)
        batch_op.create_index('ix_audit_logs_created_at', ['created_at'], unique=False)

    _enable_row_level_security()


def downgrade() -> None:
    """Drop the practice tables (and RLS policies on PostgreSQL)."""
    _disable_row_level_security()

    for table in (
        'audit_logs',
        'progress_metrics',
        'treatment_goals',
        'session_notes',
        'sessions',
        'client_profiles',
        'clients',
        'therapists',
    ):
        op.drop_table(table)

    if op.get_bind().dialect.name == 'postgresql':
        for enum_name in ('goalstatus', 'sessionstatus', 'sessiontype', 'clientstatus'):
            op.execute(f"DROP TYPE IF EXISTS {enum_name}")


def _enable_row_level_security() -> None:
    if op.get_bind().dialect.name != 'postgresql':
        return

    # Principal set per transaction by the restricted store
    op.execute(
        "CREATE OR REPLACE FUNCTION psyplex_principal() RETURNS text "
        "LANGUAGE sql STABLE AS "
        "$$ SELECT current_setting('request.jwt.claim.sub', true) $$"
    )
    for table, predicate in _POLICIES.items():
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(
            f"CREATE POLICY {table}_owner ON {table} "
            f"USING ({predicate}) WITH CHECK ({predicate})"
        )


def _disable_row_level_security() -> None:
    if op.get_bind().dialect.name != 'postgresql':
        return

    for table in _POLICIES:
        op.execute(f"DROP POLICY IF EXISTS {table}_owner ON {table}")
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")
    op.execute("DROP FUNCTION IF EXISTS psyplex_principal()")
