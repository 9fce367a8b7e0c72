"""initial sales agent schema: tenants, catalog, knowledge, leads, credit transactions

Revision ID: 001
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the tables used by the chat turn path and the enrichment tasks"""

    op.create_table('tenants',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('api_key', sa.String(), nullable=False),
        sa.Column('company_name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('bot_persona', sa.Text(), nullable=True),
        sa.Column('training_pdf', sa.String(), nullable=True),
        sa.Column('sales_prompt_override', sa.Text(), nullable=True),
        sa.Column('image_credits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('auto_replenish', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('stripe_customer_id', sa.String(length=255), nullable=True),
        sa.Column('logo_url', sa.String(), nullable=True),
        sa.Column('primary_color', sa.String(length=20), nullable=True),
        sa.Column('bot_title', sa.String(), nullable=True),
        sa.Column('website_url', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('image_credits >= 0', name='ck_tenant_credits_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_tenants_api_key', 'tenants', ['api_key'], unique=True)
    op.create_index('ix_tenants_email', 'tenants', ['email'], unique=False)
    op.create_index('ix_tenants_stripe_customer_id', 'tenants', ['stripe_customer_id'], unique=False)

    op.create_table('product_gallery',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('ai_description', sa.Text(), nullable=True),
        sa.Column('image_url', sa.String(), nullable=True),
        sa.Column('product_file_url', sa.String(), nullable=True),
        sa.Column('gallery_urls', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_product_gallery_tenant_id', 'product_gallery', ['tenant_id'], unique=False)
    op.create_index('idx_product_tenant_position', 'product_gallery', ['tenant_id', 'position'], unique=False)

    op.create_table('knowledge_documents',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('source', sa.String(), nullable=True),
        sa.Column('embedding', sa.JSON(), nullable=True),
        sa.Column('embedding_model', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_knowledge_documents_tenant_id', 'knowledge_documents', ['tenant_id'], unique=False)
    op.create_index('idx_knowledge_tenant', 'knowledge_documents', ['tenant_id'], unique=False)

    op.create_table('leads',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('customer_name', sa.String(), nullable=True),
        sa.Column('customer_phone', sa.String(), nullable=True),
        sa.Column('customer_email', sa.String(), nullable=True),
        sa.Column('customer_address', sa.Text(), nullable=True),
        sa.Column('project_summary', sa.Text(), nullable=True),
        sa.Column('appointment_request', sa.String(), nullable=True),
        sa.Column('preferred_method', sa.String(length=20), nullable=True),
        sa.Column('quality_score', sa.Integer(), nullable=True),
        sa.Column('ai_summary', sa.Text(), nullable=True),
        sa.Column('customer_images', sa.JSON(), nullable=False),
        sa.Column('ai_renderings', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'customer_phone', name='uq_lead_tenant_phone')
    )
    op.create_index('ix_leads_tenant_id', 'leads', ['tenant_id'], unique=False)
    op.create_index('idx_lead_tenant_email', 'leads', ['tenant_id', 'customer_email'], unique=False)
    op.create_index('idx_lead_tenant_created', 'leads', ['tenant_id', 'created_at'], unique=False)

    op.create_table('credit_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('delta', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=50), nullable=False, server_default='render'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_credit_transactions_id', 'credit_transactions', ['id'], unique=False)
    op.create_index('ix_credit_transactions_tenant_id', 'credit_transactions', ['tenant_id'], unique=False)
    op.create_index('ix_credit_transactions_created_at', 'credit_transactions', ['created_at'], unique=False)
    op.create_index('idx_credit_tx_tenant_created', 'credit_transactions', ['tenant_id', 'created_at'], unique=False)


def downgrade() -> None:
    """Drop all sales agent tables"""
    op.drop_index('idx_credit_tx_tenant_created', table_name='credit_transactions')
    op.drop_index('ix_credit_transactions_created_at', table_name='credit_transactions')
    op.drop_index('ix_credit_transactions_tenant_id', table_name='credit_transactions')
    op.drop_index('ix_credit_transactions_id', table_name='credit_transactions')
    op.drop_table('credit_transactions')

    op.drop_index('idx_lead_tenant_created', table_name='leads')
    op.drop_index('idx_lead_tenant_email', table_name='leads')
    op.drop_index('ix_leads_tenant_id', table_name='leads')
    op.drop_table('leads')

    op.drop_index('idx_knowledge_tenant', table_name='knowledge_documents')
    op.drop_index('ix_knowledge_documents_tenant_id', table_name='knowledge_documents')
    op.drop_table('knowledge_documents')

    op.drop_index('idx_product_tenant_position', table_name='product_gallery')
    op.drop_index('ix_product_gallery_tenant_id', table_name='product_gallery')
    op.drop_table('product_gallery')

    op.drop_index('ix_tenants_stripe_customer_id', table_name='tenants')
    op.drop_index('ix_tenants_email', table_name='tenants')
    op.drop_index('ix_tenants_api_key', table_name='tenants')
    op.drop_table('tenants')
