"""Appointments and clinical statuses for the follow-up flag rules.

Revision ID: 0002_appointments
Revises: 0001_notification_engine
Create Date: 2026-10-18

Adds:
- patients.status, surgery_implants.status
- appointments (visits tied to a patient, operation or placement)
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0002_appointments'
down_revision = '0001_notification_engine'
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ==========================================================================
    # Clinical statuses
    # ==========================================================================
    op.add_column('patients', sa.Column('status', sa.String(20), server_default=sa.text("'ACTIVE'"), nullable=False))
    op.add_column('surgery_implants', sa.Column('status', sa.String(20), server_default=sa.text("'IN_FOLLOWUP'"), nullable=False))

    # ==========================================================================
    # Appointments
    # ==========================================================================
    op.create_table(
        'appointments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('patient_id', sa.Uuid(), nullable=False),
        sa.Column('operation_id', sa.Uuid(), nullable=True),
        sa.Column('surgery_implant_id', sa.Uuid(), nullable=True),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), server_default=sa.text("'UPCOMING'"), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('date_start', sa.DateTime(), nullable=False),
        sa.Column('isq', sa.Float(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['operation_id'], ['operations.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['surgery_implant_id'], ['surgery_implants.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_appointments_patient', 'appointments', ['organization_id', 'patient_id'])
    op.create_index('idx_appointments_surgery_implant', 'appointments', ['surgery_implant_id'])
    op.create_index('idx_appointments_operation', 'appointments', ['operation_id'])


def downgrade() -> None:
    op.drop_table('appointments')
    op.drop_column('surgery_implants', 'status')
    op.drop_column('patients', 'status')
