"""create integration tables

Revision ID: 001
Revises:
Create Date: 2026-10-18

Creates the vehicle inventory view used to build listing snapshots and the
integration pipeline tables: portal_connection, integration_job,
portal_listing, integration_log.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create vehicle, portal and integration job tables."""

    # Vehicle inventory (read by the worker)
    op.create_table(
        'vehicle',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('tenant_id', UUID(as_uuid=True), nullable=False),
        sa.Column('brand', sa.Text, nullable=False),
        sa.Column('model', sa.Text, nullable=False),
        sa.Column('version', sa.Text, nullable=True),
        sa.Column('year_manufacture', sa.Integer, nullable=False),
        sa.Column('year_model', sa.Integer, nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=True),
        sa.Column('km', sa.Integer, nullable=False, server_default='0'),
        sa.Column('fuel', sa.Text, nullable=False, comment='flex|gasoline|ethanol|diesel|electric|hybrid'),
        sa.Column('transmission', sa.Text, nullable=False, comment='manual|automatic|cvt|automated'),
        sa.Column('color', sa.Text, nullable=True),
        sa.Column('title', sa.Text, nullable=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('features', JSONB, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()'))
    )
    op.create_index('idx_vehicle_tenant', 'vehicle', ['tenant_id'])

    op.create_table(
        'vehicle_media',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('vehicle_id', UUID(as_uuid=True), sa.ForeignKey('vehicle.id', ondelete='CASCADE'), nullable=False),
        sa.Column('url', sa.Text, nullable=False),
        sa.Column('is_cover', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('position', sa.Integer, nullable=False, server_default='0')
    )
    op.create_index('idx_vehicle_media_vehicle', 'vehicle_media', ['vehicle_id', 'position'])

    # OAuth connections, one per (tenant, portal)
    op.create_table(
        'portal_connection',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('tenant_id', UUID(as_uuid=True), nullable=False),
        sa.Column('portal_code', sa.Text, nullable=False),
        sa.Column('access_token_encrypted', sa.Text, nullable=False, comment='AES-256-GCM, v1.<base64>'),
        sa.Column('refresh_token_encrypted', sa.Text, nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('active', sa.Boolean, nullable=False, server_default='true'),
        sa.Column('needs_reauth', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('connected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()'))
    )
    op.create_index(
        'uq_portal_connection_tenant_portal', 'portal_connection', ['tenant_id', 'portal_code'], unique=True
    )

    # Job queue
    op.create_table(
        'integration_job',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('tenant_id', UUID(as_uuid=True), nullable=False),
        sa.Column('vehicle_id', UUID(as_uuid=True), nullable=False),
        sa.Column('portal_code', sa.Text, nullable=False),
        sa.Column('job_type', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer, nullable=False, server_default='0'),
        sa.Column('max_attempts', sa.Integer, nullable=False, server_default='3'),
        sa.Column('next_attempt_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('error_message', sa.Text, nullable=True),
        sa.Column('error_kind', sa.String(20), nullable=True),
        sa.Column('idempotency_key', sa.Text, nullable=False),
        sa.Column('lease_version', sa.Integer, nullable=False, server_default='0'),
        sa.Column('claimed_by', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('idempotency_key', name='uq_integration_job_idempotency_key'),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')",
            name='ck_integration_job_status'
        ),
        sa.CheckConstraint(
            "job_type IN ('publish', 'update', 'pause', 'delete', 'sync_status')",
            name='ck_integration_job_type'
        ),
        sa.CheckConstraint('attempts >= 0', name='ck_integration_job_attempts')
    )
    op.create_index('idx_integration_job_claim', 'integration_job', ['status', 'next_attempt_at', 'created_at'])
    op.create_index('idx_integration_job_tenant', 'integration_job', ['tenant_id', sa.text('created_at DESC')])

    # Published listings, one per (vehicle, portal)
    op.create_table(
        'portal_listing',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('tenant_id', UUID(as_uuid=True), nullable=False),
        sa.Column('vehicle_id', UUID(as_uuid=True), nullable=False),
        sa.Column('portal_code', sa.Text, nullable=False),
        sa.Column('external_id', sa.Text, nullable=False),
        sa.Column('external_url', sa.Text, nullable=True),
        sa.Column('status', sa.Text, nullable=False, server_default='published'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default='true'),
        sa.Column('idempotency_key', sa.Text, nullable=True, comment='Key of the job that published it'),
        sa.Column('last_sync_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()'))
    )
    op.create_index(
        'uq_portal_listing_vehicle_portal', 'portal_listing', ['vehicle_id', 'portal_code'], unique=True
    )
    op.create_index('idx_portal_listing_tenant', 'portal_listing', ['tenant_id'])

    # Append-only integration trail
    op.create_table(
        'integration_log',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('tenant_id', UUID(as_uuid=True), nullable=False),
        sa.Column('portal_code', sa.Text, nullable=False),
        sa.Column('job_id', sa.Text, nullable=False, comment="Job UUID or 'auth-flow'"),
        sa.Column('vehicle_id', UUID(as_uuid=True), nullable=True),
        sa.Column('level', sa.String(10), nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint("level IN ('info', 'error')", name='ck_integration_log_level')
    )
    op.create_index('ix_integration_log_tenant_created_at', 'integration_log', ['tenant_id', 'created_at'])
    op.create_index('ix_integration_log_job_id', 'integration_log', ['job_id'])


def downgrade() -> None:
    """Drop all integration tables."""
    op.drop_index('ix_integration_log_job_id', table_name='integration_log')
    op.drop_index('ix_integration_log_tenant_created_at', table_name='integration_log')
    op.drop_table('integration_log')

    op.drop_index('idx_portal_listing_tenant', table_name='portal_listing')
    op.drop_index('uq_portal_listing_vehicle_portal', table_name='portal_listing')
    op.drop_table('portal_listing')

    op.drop_index('idx_integration_job_tenant', table_name='integration_job')
    op.drop_index('idx_integration_job_claim', table_name='integration_job')
    op.drop_table('integration_job')

    op.drop_index('uq_portal_connection_tenant_portal', table_name='portal_connection')
    op.drop_table('portal_connection')

    op.drop_index('idx_vehicle_media_vehicle', table_name='vehicle_media')
    op.drop_table('vehicle_media')

    op.drop_index('idx_vehicle_tenant', table_name='vehicle')
    op.drop_table('vehicle')
