"""Initial PropertyFlow schema

Revision ID: 001_initial
Revises:
Create Date: 2026-09-14

Landlords, properties and leases; tenant screening; rent payments;
contractor profiles, subscriptions and operations; notifications, audit
log and the jobs outbox. Money is INTEGER CENTS. Enum columns store the
member names.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID(as_uuid=True)
JSONB = postgresql.JSONB()


def _timestamps(updated: bool = True) -> list[sa.Column]:
    columns = [sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now())]
    if updated:
        columns.append(sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()))
    return columns


def upgrade() -> None:
    # === USERS ===
    op.create_table(
        'users',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('firebase_uid', sa.String(128), unique=True, nullable=False, index=True),
        sa.Column('email', sa.String(255), unique=True, nullable=False, index=True),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('role', sa.Enum('ADMIN', 'LANDLORD', 'CONTRACTOR', 'TENANT', name='userrole'), nullable=False, index=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
    )

    # === LANDLORDS ===
    op.create_table(
        'landlords',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('owner_user_id', UUID, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('subdomain', sa.String(100), unique=True, nullable=False, index=True),
        sa.Column('company_email', sa.String(255), nullable=True),
        sa.Column('company_phone', sa.String(50), nullable=True),
        sa.Column('company_address', sa.Text(), nullable=True),
        sa.Column('security_deposit_months', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('stripe_connect_account_id', sa.String(255), nullable=True),
        sa.Column(
            'stripe_onboarding_status',
            sa.Enum('NOT_STARTED', 'PENDING', 'PENDING_VERIFICATION', 'ACTIVE', name='connectonboardingstatus'),
            nullable=False,
        ),
        *_timestamps(),
    )

    # === PROPERTIES ===
    op.create_table(
        'properties',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('landlord_id', UUID, sa.ForeignKey('landlords.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=False),
        sa.Column(
            'property_type',
            sa.Enum('SINGLE_FAMILY', 'MULTI_FAMILY', 'APARTMENT', 'CONDO', 'COMMERCIAL', name='propertytype'),
            nullable=False,
        ),
        sa.Column('address_line1', sa.String(255), nullable=False),
        sa.Column('address_line2', sa.String(255), nullable=True),
        sa.Column('city', sa.String(100), nullable=False),
        sa.Column('state', sa.String(50), nullable=False),
        sa.Column('zip_code', sa.String(20), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('landlord_id', 'slug', name='uq_property_landlord_slug'),
    )

    # === UNITS ===
    op.create_table(
        'units',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('property_id', UUID, sa.ForeignKey('properties.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('unit_type', sa.String(50), nullable=True),
        sa.Column('bedrooms', sa.Integer(), nullable=True),
        sa.Column('bathrooms', sa.Integer(), nullable=True),
        sa.Column('sq_ft', sa.Integer(), nullable=True),
        sa.Column('rent_amount_cents', sa.Integer(), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint('property_id', 'name', name='uq_unit_property_name'),
        sa.CheckConstraint('rent_amount_cents > 0', name='ck_unit_rent_positive'),
    )

    # === RENTAL APPLICATIONS ===
    op.create_table(
        'rental_applications',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('applicant_id', UUID, sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('unit_id', UUID, sa.ForeignKey('units.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('desired_move_in_date', sa.Date(), nullable=True),
        sa.Column('stated_monthly_income_cents', sa.Integer(), nullable=True),
        sa.Column('employer_name', sa.String(255), nullable=True),
        sa.Column('job_title', sa.String(255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column(
            'status',
            sa.Enum('PENDING', 'APPROVED', 'REJECTED', 'WITHDRAWN', name='applicationstatus'),
            nullable=False,
            index=True,
        ),
        sa.Column('admin_response', sa.Text(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('reviewed_by_id', UUID, sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        *_timestamps(),
    )

    # === LEASE TEMPLATES ===
    op.create_table(
        'lease_templates',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('landlord_id', UUID, sa.ForeignKey('landlords.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('property_id', UUID, sa.ForeignKey('properties.id', ondelete='CASCADE'), nullable=True, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('is_default', sa.Boolean(), server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
    )

    # === LEASES ===
    op.create_table(
        'leases',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('unit_id', UUID, sa.ForeignKey('units.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('tenant_id', UUID, sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('application_id', UUID, sa.ForeignKey('rental_applications.id', ondelete='SET NULL'), nullable=True),
        sa.Column('template_id', UUID, sa.ForeignKey('lease_templates.id', ondelete='SET NULL'), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('rent_amount_cents', sa.Integer(), nullable=False),
        sa.Column('billing_day_of_month', sa.Integer(), nullable=False, server_default='1'),
        sa.Column(
            'status',
            sa.Enum('DRAFT', 'PENDING_SIGNATURE', 'ACTIVE', 'TERMINATED', 'ENDED', name='leasestatus'),
            nullable=False,
            index=True,
        ),
        sa.Column('document_path', sa.String(500), nullable=True),
        sa.Column('generated_from', sa.Enum('AUTO', 'MANUAL', name='leasegeneratedfrom'), nullable=False),
        sa.Column('generated_at', sa.DateTime(), nullable=True),
        sa.Column('signed_at', sa.DateTime(), nullable=True),
        sa.Column('terminated_at', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('rent_amount_cents > 0', name='ck_lease_rent_positive'),
        sa.CheckConstraint('billing_day_of_month BETWEEN 1 AND 28', name='ck_lease_billing_day'),
        sa.CheckConstraint('end_date IS NULL OR end_date > start_date', name='ck_lease_dates'),
    )
    op.create_index('ix_leases_unit_status', 'leases', ['unit_id', 'status'])

    # === SIGNATURE REQUESTS ===
    op.create_table(
        'signature_requests',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('lease_id', UUID, sa.ForeignKey('leases.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('role', sa.Enum('TENANT', 'LANDLORD', name='signerrole'), nullable=False),
        sa.Column('recipient_email', sa.String(255), nullable=False),
        sa.Column('recipient_name', sa.String(255), nullable=True),
        sa.Column('token_hash', sa.String(64), unique=True, nullable=False, index=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('status', sa.Enum('SENT', 'SIGNED', 'EXPIRED', name='signaturestatus'), nullable=False),
        sa.Column('signer_name', sa.String(255), nullable=True),
        sa.Column('signer_ip', sa.String(45), nullable=True),
        sa.Column('signed_at', sa.DateTime(), nullable=True),
        *_timestamps(updated=False),
    )

    # === VERIFICATION DOCUMENTS ===
    op.create_table(
        'verification_documents',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('application_id', UUID, sa.ForeignKey('rental_applications.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('landlord_id', UUID, sa.ForeignKey('landlords.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('category', sa.Enum('IDENTITY', 'EMPLOYMENT', name='documentcategory'), nullable=False),
        sa.Column(
            'doc_type',
            sa.Enum(
                'DRIVERS_LICENSE', 'STATE_ID', 'PASSPORT', 'PAY_STUB', 'BANK_STATEMENT',
                'OFFER_LETTER', 'OTHER',
                name='documenttype',
            ),
            nullable=False,
        ),
        sa.Column('object_path', sa.String(500), nullable=False),
        sa.Column('original_file_name', sa.String(255), nullable=False),
        sa.Column('mime_type', sa.String(100), nullable=False),
        sa.Column('file_size_bytes', sa.Integer(), nullable=False),
        sa.Column(
            'status',
            sa.Enum('PENDING', 'PROCESSING', 'NEEDS_REVIEW', 'VERIFIED', 'REJECTED', name='documentstatus'),
            nullable=False,
            index=True,
        ),
        sa.Column('ocr_text', sa.Text(), nullable=True),
        sa.Column('ocr_confidence', sa.Integer(), nullable=True),
        sa.Column('ocr_processed_at', sa.DateTime(), nullable=True),
        sa.Column('extracted_data', JSONB, nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('verification_method', sa.Enum('OCR', 'MANUAL', name='verificationmethod'), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('reviewed_by_id', UUID, sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('verified_at', sa.DateTime(), nullable=True),
        sa.Column('uploaded_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    # === APPLICATION VERIFICATIONS ===
    category_status = sa.Enum('PENDING', 'NEEDS_REVIEW', 'VERIFIED', 'REJECTED', name='categoryverificationstatus')
    op.create_table(
        'application_verifications',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('application_id', UUID, sa.ForeignKey('rental_applications.id', ondelete='CASCADE'), nullable=False, unique=True, index=True),
        sa.Column('identity_status', category_status, nullable=False),
        sa.Column('identity_verified_at', sa.DateTime(), nullable=True),
        sa.Column('identity_document_id', UUID, sa.ForeignKey('verification_documents.id', ondelete='SET NULL'), nullable=True),
        sa.Column(
            'employment_status',
            postgresql.ENUM(*category_status.enums, name='categoryverificationstatus', create_type=False),
            nullable=False,
        ),
        sa.Column('employment_verified_at', sa.DateTime(), nullable=True),
        sa.Column(
            'overall_status',
            sa.Enum('INCOMPLETE', 'IN_PROGRESS', 'DOCUMENTS_SUBMITTED', 'COMPLETE', name='overallverificationstatus'),
            nullable=False,
            index=True,
        ),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('monthly_income_cents', sa.Integer(), nullable=True),
        *_timestamps(),
    )

    # === RENT PAYMENTS ===
    op.create_table(
        'rent_payments',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('lease_id', UUID, sa.ForeignKey('leases.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('tenant_id', UUID, sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('kind', sa.Enum('RENT', 'DEPOSIT', name='paymentkind'), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False, index=True),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('amount_paid_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column(
            'status',
            sa.Enum('PENDING', 'PROCESSING', 'PARTIALLY_PAID', 'PAID', 'FAILED', name='rentpaymentstatus'),
            nullable=False,
            index=True,
        ),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('payment_method', sa.String(50), nullable=True),
        sa.Column('stripe_payment_intent_id', sa.String(255), nullable=True, index=True),
        *_timestamps(),
        sa.CheckConstraint('amount_cents > 0', name='ck_rent_payment_amount_positive'),
        sa.CheckConstraint('amount_paid_cents >= 0', name='ck_rent_payment_paid_non_negative'),
    )

    op.create_table(
        'payment_transactions',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('rent_payment_id', UUID, sa.ForeignKey('rent_payments.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('status', sa.Enum('SUCCEEDED', 'FAILED', 'REFUNDED', name='transactionstatus'), nullable=False),
        sa.Column('payment_method', sa.String(50), nullable=True),
        sa.Column('reference_id', sa.String(255), nullable=True, index=True),
        *_timestamps(updated=False),
    )

    op.create_table(
        'processed_webhook_events',
        sa.Column('id', sa.String(255), primary_key=True),
        sa.Column('provider', sa.String(50), nullable=False),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    # === CONTRACTORS ===
    op.create_table(
        'contractor_profiles',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('user_id', UUID, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True, index=True),
        sa.Column('business_name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('subscription_tier', sa.Enum('STARTER', 'PRO', 'ENTERPRISE', name='subscriptiontier'), nullable=False),
        sa.Column('subscription_status', sa.String(50), nullable=False, server_default='trialing'),
        sa.Column('stripe_customer_id', sa.String(255), nullable=True, index=True),
        sa.Column('stripe_subscription_id', sa.String(255), nullable=True),
        sa.Column('subscription_period_end', sa.DateTime(), nullable=True),
        sa.Column('stripe_connect_account_id', sa.String(255), nullable=True, index=True),
        sa.Column('is_payment_ready', sa.Boolean(), server_default=sa.false()),
        sa.Column('license_number', sa.String(100), nullable=True),
        sa.Column('license_state', sa.String(2), nullable=True),
        sa.Column(
            'license_status',
            sa.Enum('PENDING', 'ACTIVE', 'EXPIRED', 'SUSPENDED', 'REVOKED', 'NOT_FOUND', name='licensestatus'),
            nullable=False,
        ),
        sa.Column('license_verified_at', sa.DateTime(), nullable=True),
        sa.Column('license_expires_at', sa.Date(), nullable=True),
        sa.Column('license_details', JSONB, nullable=True),
        sa.Column('background_check_candidate_id', sa.String(100), nullable=True),
        sa.Column('background_check_invitation_id', sa.String(100), nullable=True),
        sa.Column('background_check_report_id', sa.String(100), nullable=True, index=True),
        sa.Column(
            'background_check_status',
            sa.Enum('NOT_STARTED', 'PENDING', 'CLEAR', 'CONSIDER', 'EXPIRED', name='backgroundcheckstatus'),
            nullable=False,
        ),
        sa.Column('background_check_date', sa.DateTime(), nullable=True),
        sa.Column('background_check_expires', sa.DateTime(), nullable=True),
        sa.Column('identity_inquiry_id', sa.String(100), nullable=True, index=True),
        sa.Column(
            'identity_status',
            sa.Enum('NOT_STARTED', 'PENDING', 'VERIFIED', 'FAILED', name='identityverificationstatus'),
            nullable=False,
        ),
        sa.Column('identity_verified_at', sa.DateTime(), nullable=True),
        sa.Column('next_invoice_number', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
    )

    op.create_table(
        'contractor_usage',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('contractor_id', UUID, sa.ForeignKey('contractor_profiles.id', ondelete='CASCADE'), nullable=False, unique=True, index=True),
        sa.Column('active_jobs_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('invoices_this_month', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_customers', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('team_members_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('inventory_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('equipment_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('active_leads_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('billing_period_end', sa.DateTime(), nullable=False),
        sa.Column('last_reset_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'subscription_events',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('contractor_id', UUID, sa.ForeignKey('contractor_profiles.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('from_tier', sa.String(20), nullable=True),
        sa.Column('to_tier', sa.String(20), nullable=True),
        sa.Column('stripe_event_id', sa.String(255), nullable=True),
        sa.Column('details', JSONB, nullable=True),
        *_timestamps(updated=False),
    )

    # === CONTRACTOR OPERATIONS ===
    op.create_table(
        'contractor_customers',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('contractor_id', UUID, sa.ForeignKey('contractor_profiles.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'contractor_jobs',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('contractor_id', UUID, sa.ForeignKey('contractor_profiles.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('customer_id', UUID, sa.ForeignKey('contractor_customers.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column(
            'status',
            sa.Enum('QUOTED', 'SCHEDULED', 'IN_PROGRESS', 'COMPLETED', 'CANCELED', name='contractorjobstatus'),
            nullable=False,
            index=True,
        ),
        sa.Column('scheduled_date', sa.Date(), nullable=True),
        sa.Column('estimated_cost_cents', sa.Integer(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'contractor_employees',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('contractor_id', UUID, sa.ForeignKey('contractor_profiles.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('role', sa.String(100), nullable=True),
        sa.Column('hourly_rate_cents', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        'contractor_inventory_items',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('contractor_id', UUID, sa.ForeignKey('contractor_profiles.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('sku', sa.String(100), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=True),
        sa.Column('reorder_level', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('quantity >= 0', name='ck_inventory_quantity_non_negative'),
    )

    op.create_table(
        'contractor_invoices',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('contractor_id', UUID, sa.ForeignKey('contractor_profiles.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('customer_id', UUID, sa.ForeignKey('contractor_customers.id', ondelete='SET NULL'), nullable=True),
        sa.Column('job_id', UUID, sa.ForeignKey('contractor_jobs.id', ondelete='SET NULL'), nullable=True),
        sa.Column('invoice_number', sa.String(50), nullable=False),
        sa.Column('status', sa.Enum('DRAFT', 'SENT', 'PAID', 'VOID', name='invoicestatus'), nullable=False, index=True),
        sa.Column('line_items', JSONB, nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('contractor_id', 'invoice_number', name='uq_invoice_number'),
    )

    # === NOTIFICATIONS ===
    op.create_table(
        'notifications',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('user_id', UUID, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column(
            'type',
            sa.Enum(
                'APPLICATION_SUBMITTED', 'APPLICATION_APPROVED', 'APPLICATION_REJECTED',
                'LEASE_SIGNED', 'PAYMENT_RECEIVED', 'VERIFICATION_UPDATE',
                'LIMIT_WARNING', 'LIMIT_REACHED', 'FEATURE_LOCKED',
                'UPGRADE_PROMPT', 'UPGRADE_SUCCESS',
                name='notificationtype',
            ),
            nullable=False,
        ),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('action_url', sa.String(500), nullable=True),
        sa.Column('feature', sa.String(50), nullable=True),
        sa.Column('metadata', JSONB, nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_notifications_user_feature_type', 'notifications', ['user_id', 'feature', 'type'])

    # === AUDIT LOG (append-only) ===
    op.create_table(
        'audit_log',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('landlord_id', UUID, sa.ForeignKey('landlords.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('contractor_id', UUID, sa.ForeignKey('contractor_profiles.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('user_id', UUID, sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column(
            'action',
            sa.Enum(
                'APPLICATION_SUBMITTED', 'APPLICATION_APPROVED', 'APPLICATION_REJECTED',
                'APPLICATION_WITHDRAWN', 'LEASE_SIGNED', 'LEASE_TERMINATED',
                'DOCUMENT_UPLOADED', 'DOCUMENT_REVIEWED', 'PAYMENT_RECORDED',
                'SUBSCRIPTION_CHANGED', 'LICENSE_VERIFIED', 'BACKGROUND_CHECK_UPDATED',
                'IDENTITY_VERIFICATION_UPDATED',
                name='auditaction',
            ),
            nullable=False,
            index=True,
        ),
        sa.Column('resource_type', sa.String(50), nullable=False),
        sa.Column('resource_id', UUID, nullable=False),
        sa.Column('details', JSONB, nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        *_timestamps(updated=False),
    )

    # === JOBS OUTBOX ===
    job_status = sa.Enum('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED', 'DEAD_LETTER', name='jobstatus')
    op.create_table(
        'jobs_outbox',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('type', sa.String(100), nullable=False, index=True),
        sa.Column('payload', JSONB, nullable=False),
        sa.Column('status', job_status, nullable=False, index=True),
        sa.Column('unique_scope', sa.String(500), nullable=False, unique=True),
        sa.Column('attempts', sa.Integer(), server_default='0'),
        sa.Column('max_attempts', sa.Integer(), server_default='3'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('run_after', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index(
        'ix_jobs_outbox_pending',
        'jobs_outbox',
        ['status', 'run_after'],
        postgresql_where=sa.text("status = 'PENDING'"),
    )


def downgrade() -> None:
    op.drop_index('ix_jobs_outbox_pending')
    op.drop_table('jobs_outbox')
    op.drop_table('audit_log')
    op.drop_index('ix_notifications_user_feature_type')
    op.drop_table('notifications')
    op.drop_table('contractor_invoices')
    op.drop_table('contractor_inventory_items')
    op.drop_table('contractor_employees')
    op.drop_table('contractor_jobs')
    op.drop_table('contractor_customers')
    op.drop_table('subscription_events')
    op.drop_table('contractor_usage')
    op.drop_table('contractor_profiles')
    op.drop_table('processed_webhook_events')
    op.drop_table('payment_transactions')
    op.drop_table('rent_payments')
    op.drop_table('application_verifications')
    op.drop_table('verification_documents')
    op.drop_table('signature_requests')
    op.drop_index('ix_leases_unit_status')
    op.drop_table('leases')
    op.drop_table('lease_templates')
    op.drop_table('rental_applications')
    op.drop_table('units')
    op.drop_table('properties')
    op.drop_table('landlords')
    op.drop_table('users')

    # Drop enums
    for enum_name in (
        'jobstatus', 'auditaction', 'notificationtype', 'invoicestatus',
        'contractorjobstatus', 'identityverificationstatus', 'backgroundcheckstatus',
        'licensestatus', 'subscriptiontier', 'transactionstatus', 'rentpaymentstatus',
        'paymentkind', 'overallverificationstatus', 'categoryverificationstatus',
        'verificationmethod', 'documentstatus', 'documenttype', 'documentcategory',
        'signaturestatus', 'signerrole', 'leasegeneratedfrom', 'leasestatus',
        'applicationstatus', 'propertytype', 'connectonboardingstatus', 'userrole',
    ):
        op.execute(f'DROP TYPE IF EXISTS {enum_name}')
