"""create lead lifecycle tables

Revision ID: 20261019_lead_lifecycle
Revises:
Create Date: 2026-10-19

Cria as tabelas do núcleo: users, leads, lead_notes,
lead_follow_ups e audit_logs.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20261019_lead_lifecycle'
down_revision = None
branch_labels = None
depends_on = None


def table_exists(table_name: str) -> bool:
    """Check if a table exists in the database."""
    return sa.inspect(op.get_bind()).has_table(table_name)


def upgrade() -> None:
    """
    Cria as tabelas de usuários, leads (com notas e follow-ups) e auditoria.
    """

    if not table_exists('users'):
        op.create_table(
            'users',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('first_name', sa.String(50), nullable=False),
            sa.Column('last_name', sa.String(50), nullable=False),
            sa.Column('email', sa.String(255), nullable=False),

            # Equipe e permissões
            sa.Column('role', sa.String(20), nullable=True),
            sa.Column('team', sa.String(20), nullable=False),
            sa.Column('active', sa.Boolean(), nullable=True),
            sa.Column('assigned_platforms', sa.JSON(), nullable=True),
            sa.Column('capabilities', sa.JSON(), nullable=True),

            # Segurança
            sa.Column('login_attempts', sa.Integer(), nullable=True),
            sa.Column('lock_until', sa.DateTime(), nullable=True),

            # Métricas
            sa.Column('leads_created', sa.Integer(), nullable=True),
            sa.Column('leads_converted', sa.Integer(), nullable=True),
            sa.Column('campaigns_managed', sa.Integer(), nullable=True),
            sa.Column('total_revenue', sa.Float(), nullable=True),

            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_users_email', 'users', ['email'], unique=True)
        op.create_index('ix_users_team', 'users', ['team'])
        print("✅ Tabela users criada")
    else:
        print("ℹ️ Tabela users já existe")

    if not table_exists('leads'):
        op.create_table(
            'leads',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('version', sa.Integer(), nullable=False, server_default='1'),

            # Origem
            sa.Column('source', sa.String(30), nullable=False),
            sa.Column('source_details', sa.JSON(), nullable=True),
            sa.Column('platform', sa.String(20), nullable=False),

            # Atribuição
            sa.Column('assigned_to', sa.Integer(), nullable=False),
            sa.Column('assigned_team', sa.String(20), nullable=False),
            sa.Column('assigned_at', sa.DateTime(), nullable=True),
            sa.Column('assignment_method', sa.String(50), nullable=True),

            # Pipeline
            sa.Column('status', sa.String(20), nullable=False),
            sa.Column('priority', sa.String(10), nullable=True),
            sa.Column('quality', sa.String(10), nullable=True),

            # Artista (email/phone criptografados)
            sa.Column('artist_name', sa.String(100), nullable=False),
            sa.Column('email', sa.String(1024), nullable=False),
            sa.Column('phone', sa.String(512), nullable=True),
            sa.Column('country', sa.String(50), nullable=True),
            sa.Column('city', sa.String(100), nullable=True),
            sa.Column('website', sa.String(255), nullable=True),
            sa.Column('social_media', sa.JSON(), nullable=True),
            sa.Column('genre', sa.String(100), nullable=True),
            sa.Column('label', sa.String(100), nullable=True),
            sa.Column('monthly_listeners', sa.Integer(), nullable=True),
            sa.Column('total_streams', sa.Integer(), nullable=True),

            # Comercial
            sa.Column('budget', sa.Float(), nullable=True),
            sa.Column('budget_currency', sa.String(3), nullable=True),
            sa.Column('deal_value', sa.Float(), nullable=True),
            sa.Column('commission', sa.Float(), nullable=True),
            sa.Column('commission_rate', sa.Float(), nullable=True),

            # Datas
            sa.Column('first_contact_date', sa.DateTime(), nullable=True),
            sa.Column('last_contact_date', sa.DateTime(), nullable=True),
            sa.Column('last_activity_date', sa.DateTime(), nullable=True),
            sa.Column('won_date', sa.DateTime(), nullable=True),
            sa.Column('lost_date', sa.DateTime(), nullable=True),
            sa.Column('lost_reason', sa.String(30), nullable=True),
            sa.Column('lost_reason_details', sa.Text(), nullable=True),

            # Próxima ação
            sa.Column('next_follow_up', sa.DateTime(), nullable=True),
            sa.Column('next_follow_up_type', sa.String(20), nullable=True),
            sa.Column('follow_up_count', sa.Integer(), nullable=True),

            # Score
            sa.Column('lead_score', sa.Integer(), nullable=True),
            sa.Column('response_time', sa.Integer(), nullable=True),
            sa.Column('tags', sa.JSON(), nullable=True),

            # Arquivamento
            sa.Column('is_archived', sa.Boolean(), nullable=True),
            sa.Column('archived_at', sa.DateTime(), nullable=True),
            sa.Column('archived_by', sa.Integer(), nullable=True),

            sa.Column('created_at', sa.DateTime(), nullable=True),
            sa.Column('updated_at', sa.DateTime(), nullable=True),

            sa.ForeignKeyConstraint(['assigned_to'], ['users.id']),
            sa.ForeignKeyConstraint(['archived_by'], ['users.id']),
            sa.PrimaryKeyConstraint('id'),
        )
        for column in (
            'source', 'platform', 'assigned_to', 'assigned_team', 'status',
            'last_activity_date', 'next_follow_up', 'lead_score', 'is_archived', 'created_at',
        ):
            op.create_index(f'ix_leads_{column}', 'leads', [column])
        print("✅ Tabela leads criada")
    else:
        print("ℹ️ Tabela leads já existe")

    if not table_exists('lead_notes'):
        op.create_table(
            'lead_notes',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('lead_id', sa.Integer(), nullable=False),
            sa.Column('author_id', sa.Integer(), nullable=False),
            sa.Column('content', sa.Text(), nullable=False),
            sa.Column('type', sa.String(20), nullable=True),
            sa.Column('is_private', sa.Boolean(), nullable=True),
            sa.Column('is_system', sa.Boolean(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['author_id'], ['users.id']),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_lead_notes_lead_id', 'lead_notes', ['lead_id'])
        op.create_index('ix_lead_notes_author_id', 'lead_notes', ['author_id'])
        print("✅ Tabela lead_notes criada")
    else:
        print("ℹ️ Tabela lead_notes já existe")

    if not table_exists('lead_follow_ups'):
        op.create_table(
            'lead_follow_ups',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('lead_id', sa.Integer(), nullable=False),
            sa.Column('scheduled_by', sa.Integer(), nullable=False),
            sa.Column('scheduled_for', sa.DateTime(), nullable=False),
            sa.Column('type', sa.String(20), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('completed', sa.Boolean(), nullable=True),
            sa.Column('completed_at', sa.DateTime(), nullable=True),
            sa.Column('completed_by', sa.Integer(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['scheduled_by'], ['users.id']),
            sa.ForeignKeyConstraint(['completed_by'], ['users.id']),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_lead_follow_ups_lead_id', 'lead_follow_ups', ['lead_id'])
        op.create_index('ix_lead_follow_ups_scheduled_for', 'lead_follow_ups', ['scheduled_for'])
        print("✅ Tabela lead_follow_ups criada")
    else:
        print("ℹ️ Tabela lead_follow_ups já existe")

    if not table_exists('audit_logs'):
        op.create_table(
            'audit_logs',
            sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),

            # Ator
            sa.Column('user_id', sa.Integer(), nullable=True),
            sa.Column('user_email', sa.String(255), nullable=False),
            sa.Column('user_name', sa.String(200), nullable=False),

            # Ação
            sa.Column('action', sa.String(100), nullable=False),
            sa.Column('resource_type', sa.String(50), nullable=False),
            sa.Column('resource_id', sa.Integer(), nullable=True),
            sa.Column('resource_name', sa.String(255), nullable=True),
            sa.Column('description', sa.String(500), nullable=False),

            # Resultado
            sa.Column('success', sa.Boolean(), nullable=False),
            sa.Column('error_message', sa.Text(), nullable=True),
            sa.Column('error_code', sa.String(50), nullable=True),

            # Origem
            sa.Column('ip_address', sa.String(45), nullable=True),
            sa.Column('user_agent', sa.String(500), nullable=True),
            sa.Column('request_url', sa.String(500), nullable=True),
            sa.Column('request_method', sa.String(10), nullable=True),
            sa.Column('session_id', sa.String(100), nullable=True),
            sa.Column('processing_time_ms', sa.Integer(), nullable=True),

            # Classificação
            sa.Column('category', sa.String(30), nullable=False),
            sa.Column('severity', sa.String(20), nullable=False),
            sa.Column('tags', sa.JSON(), nullable=True),

            # Alterações
            sa.Column('previous_data', sa.JSON(), nullable=True),
            sa.Column('new_data', sa.JSON(), nullable=True),
            sa.Column('changed_fields', sa.JSON(), nullable=True),

            # RGPD
            sa.Column('gdpr_relevant', sa.Boolean(), nullable=True),
            sa.Column('data_subject', sa.String(255), nullable=True),

            # Retenção
            sa.Column('retention_period_days', sa.Integer(), nullable=False, server_default='365'),
            sa.Column('is_archived', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('archived_at', sa.DateTime(), nullable=True),

            sa.Column('timestamp', sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )
        for column in (
            'user_id', 'user_email', 'action', 'resource_id', 'success', 'ip_address',
            'category', 'severity', 'gdpr_relevant', 'data_subject', 'is_archived', 'timestamp',
        ):
            op.create_index(f'ix_audit_logs_{column}', 'audit_logs', [column])
        print("✅ Tabela audit_logs criada")
    else:
        print("ℹ️ Tabela audit_logs já existe")


def downgrade() -> None:
    """
    Remove as tabelas do núcleo (ordem inversa das FKs).
    """
    for table_name in ('audit_logs', 'lead_follow_ups', 'lead_notes', 'leads', 'users'):
        if table_exists(table_name):
            op.drop_table(table_name)
            print(f"✅ Tabela {table_name} removida")
