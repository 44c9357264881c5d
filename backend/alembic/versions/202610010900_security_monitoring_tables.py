"""Security monitoring tables

Revision ID: 202610010900
Revises:
Create Date: 2026-10-01 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '202610010900'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ------------------------------
    # Identity directory
    # ------------------------------
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(64), primary_key=True, nullable=False),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_profiles_email', 'profiles', ['email'])

    # ------------------------------
    # Audit log
    # ------------------------------
    op.create_table(
        'auth_audit_log',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('event_type', sa.String(64), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=True),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('event_data', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_auth_audit_log_user_id', 'auth_audit_log', ['user_id'])
    op.create_index('ix_auth_audit_log_type_created', 'auth_audit_log', ['event_type', 'created_at'])

    # ------------------------------
    # Per-user security state
    # ------------------------------
    op.create_table(
        'user_security',
        sa.Column('user_id', sa.String(64), primary_key=True, nullable=False),
        sa.Column('failed_login_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('locked_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('mfa_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('mfa_secret', sa.Text(), nullable=True),
        sa.Column('password_changed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'mfa_backup_codes',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('user_id', sa.String(64), sa.ForeignKey('user_security.user_id', ondelete='CASCADE'), nullable=False),
        sa.Column('code_hash', sa.String(255), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_mfa_backup_codes_user_id', 'mfa_backup_codes', ['user_id'])

    # ------------------------------
    # Alerting
    # ------------------------------
    op.create_table(
        'alert_rules',
        sa.Column('id', sa.String(64), primary_key=True, nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('event_type', sa.String(64), nullable=False),
        sa.Column('condition', sa.String(32), nullable=False),
        sa.Column('threshold', sa.Integer(), nullable=True),
        sa.Column('time_window_minutes', sa.Integer(), nullable=False),
        sa.Column('severity', sa.String(16), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False),
        sa.Column('actions', sa.JSON(), nullable=False),
        sa.Column('parameters', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_alert_rules_event_type', 'alert_rules', ['event_type'])

    op.create_table(
        'alerts',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('rule_id', sa.String(64), sa.ForeignKey('alert_rules.id', ondelete='CASCADE'), nullable=False),
        sa.Column('rule_name', sa.String(255), nullable=False),
        sa.Column('severity', sa.String(16), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('subject', sa.String(255), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('acknowledged_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('acknowledged_by', sa.String(255), nullable=True),
    )
    op.create_index('ix_alerts_status_created', 'alerts', ['status', 'created_at'])
    op.create_index('ix_alerts_rule_subject_created', 'alerts', ['rule_id', 'subject', 'created_at'])

    op.create_table(
        'alert_notifications',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('alert_id', sa.String(36), sa.ForeignKey('alerts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('channel_type', sa.String(32), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('recipient', sa.String(512), nullable=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_alert_notifications_alert_id', 'alert_notifications', ['alert_id'])

    # ------------------------------
    # Saved reports
    # ------------------------------
    op.create_table(
        'security_reports',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('report_type', sa.String(32), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('summary', sa.JSON(), nullable=False),
        sa.Column('period_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('period_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('generated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_security_reports_report_type', 'security_reports', ['report_type'])
    op.create_index('ix_security_reports_generated_at', 'security_reports', ['generated_at'])


def downgrade() -> None:
    op.drop_table('security_reports')
    op.drop_table('alert_notifications')
    op.drop_table('alerts')
    op.drop_table('alert_rules')
    op.drop_table('mfa_backup_codes')
    op.drop_table('user_security')
    op.drop_table('auth_audit_log')
    op.drop_table('profiles')
