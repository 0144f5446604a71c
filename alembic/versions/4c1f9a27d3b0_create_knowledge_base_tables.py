"""create knowledge base tables

Revision ID: 4c1f9a27d3b0
Revises:
Create Date: 2026-10-19 09:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4c1f9a27d3b0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    connection = op.get_bind()
    inspector = sa.inspect(connection)
    existing_tables = inspector.get_table_names()

    if 'knowledge_document' not in existing_tables:
        op.create_table(
            'knowledge_document',
            sa.Column('id', sa.String(36), primary_key=True),
            sa.Column('chatbot_type', sa.String(32), nullable=False),
            sa.Column('file_name', sa.String(512), nullable=False),
            sa.Column('file_path', sa.String(1024), nullable=False),
            sa.Column('file_size', sa.Integer(), nullable=False),
            sa.Column('mime_type', sa.String(128), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('uploaded_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
            sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('chunk_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('status', sa.String(16), nullable=False, server_default='pending'),
            sa.Column('error_message', sa.Text(), nullable=True),
            sa.Column('namespace', sa.String(128), nullable=False),
            sa.Column('meta_data', sa.JSON(), nullable=True),
        )
        op.create_index(op.f('ix_knowledge_document_chatbot_type'), 'knowledge_document', ['chatbot_type'], unique=False)
        op.create_index(op.f('ix_knowledge_document_status'), 'knowledge_document', ['status'], unique=False)
        op.create_index(op.f('ix_knowledge_document_uploaded_at'), 'knowledge_document', ['uploaded_at'], unique=False)
        op.create_index('ix_knowledge_document_type_status', 'knowledge_document', ['chatbot_type', 'status'], unique=False)

    if 'conversation' not in existing_tables:
        op.create_table(
            'conversation',
            sa.Column('id', sa.String(36), primary_key=True),
            sa.Column('session_id', sa.String(255), nullable=False),
            sa.Column('chatbot_type', sa.String(32), nullable=False),
            sa.Column('user_id', sa.String(255), nullable=True),
            sa.Column('started_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
            sa.Column('last_message_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
            sa.Column('meta_data', sa.JSON(), nullable=False),
        )
        op.create_index(op.f('ix_conversation_session_id'), 'conversation', ['session_id'], unique=True)
        op.create_index(op.f('ix_conversation_user_id'), 'conversation', ['user_id'], unique=False)
        op.create_index('ix_conversation_type_last_message', 'conversation', ['chatbot_type', 'last_message_at'], unique=False)

    if 'chat_message' not in existing_tables:
        op.create_table(
            'chat_message',
            sa.Column('id', sa.String(36), primary_key=True),
            sa.Column(
                'conversation_id',
                sa.String(36),
                sa.ForeignKey('conversation.id', ondelete='CASCADE'),
                nullable=False,
            ),
            sa.Column('position', sa.Integer(), nullable=False),
            sa.Column('role', sa.String(16), nullable=False),
            sa.Column('content', sa.Text(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
            sa.Column('sources', sa.JSON(), nullable=True),
        )
        op.create_index(op.f('ix_chat_message_conversation_id'), 'chat_message', ['conversation_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_chat_message_conversation_id'), table_name='chat_message')
    op.drop_table('chat_message')

    op.drop_index('ix_conversation_type_last_message', table_name='conversation')
    op.drop_index(op.f('ix_conversation_user_id'), table_name='conversation')
    op.drop_index(op.f('ix_conversation_session_id'), table_name='conversation')
    op.drop_table('conversation')

    op.drop_index('ix_knowledge_document_type_status', table_name='knowledge_document')
    op.drop_index(op.f('ix_knowledge_document_uploaded_at'), table_name='knowledge_document')
    op.drop_index(op.f('ix_knowledge_document_status'), table_name='knowledge_document')
    op.drop_index(op.f('ix_knowledge_document_chatbot_type'), table_name='knowledge_document')
    op.drop_table('knowledge_document')
