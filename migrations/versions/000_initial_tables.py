"""Create survey, offer, question and click ledger tables

Revision ID: 000_initial_tables
Revises:
Create Date: 2026-03-01

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '000_initial_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Respondent sessions (no foreign keys)
    op.create_table('survey_responses',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('survey_id', sa.String(length=255), nullable=False),
        sa.Column('session_id', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=1000), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_survey_responses_survey_id', 'survey_responses', ['survey_id'])
    op.create_index('ix_survey_responses_session_id', 'survey_responses', ['session_id'], unique=True)

    # Offer catalog
    op.create_table('offers',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('destination_url', sa.String(length=2048), nullable=False),
        sa.Column('pixel_url', sa.String(length=2048), nullable=True),
        sa.Column('payout', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('daily_click_cap', sa.Integer(), nullable=True),
        sa.Column('metrics', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_offers_status', 'offers', ['status'])

    # Question catalog
    op.create_table('questions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('survey_id', sa.String(length=255), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_questions_survey_id', 'questions', ['survey_id'])

    op.create_table('question_offers',
        sa.Column('question_id', sa.String(length=36), nullable=False),
        sa.Column('offer_id', sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(['question_id'], ['questions.id']),
        sa.ForeignKeyConstraint(['offer_id'], ['offers.id']),
        sa.PrimaryKeyConstraint('question_id', 'offer_id')
    )

    op.create_table('question_impressions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('question_id', sa.String(length=36), nullable=False),
        sa.Column('response_id', sa.String(length=36), nullable=True),
        sa.Column('shown_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['question_id'], ['questions.id']),
        sa.ForeignKeyConstraint(['response_id'], ['survey_responses.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_question_impressions_question_id', 'question_impressions', ['question_id'])
    op.create_index('ix_question_impressions_shown_at', 'question_impressions', ['shown_at'])
    op.create_index('idx_question_impressions_question_shown', 'question_impressions',
                    ['question_id', 'shown_at'])

    # Click ledger
    op.create_table('click_tracks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('click_id', sa.String(length=36), nullable=False),
        sa.Column('offer_id', sa.String(length=36), nullable=False),
        sa.Column('response_id', sa.String(length=36), nullable=True),
        sa.Column('session_id', sa.String(length=255), nullable=False),
        sa.Column('question_id', sa.String(length=36), nullable=True),
        sa.Column('button_variant_id', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('converted', sa.Boolean(), nullable=False),
        sa.Column('converted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revenue', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=1000), nullable=True),
        sa.Column('device_type', sa.String(length=10), nullable=True),
        sa.Column('clicked_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('click_metadata', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['offer_id'], ['offers.id']),
        sa.ForeignKeyConstraint(['response_id'], ['survey_responses.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_click_tracks_click_id', 'click_tracks', ['click_id'], unique=True)
    op.create_index('ix_click_tracks_offer_id', 'click_tracks', ['offer_id'])
    op.create_index('ix_click_tracks_question_id', 'click_tracks', ['question_id'])
    op.create_index('ix_click_tracks_clicked_at', 'click_tracks', ['clicked_at'])
    op.create_index('idx_click_tracks_offer_clicked', 'click_tracks', ['offer_id', 'clicked_at'])
    op.create_index('idx_click_tracks_question_clicked', 'click_tracks', ['question_id', 'clicked_at'])


def downgrade():
    op.drop_table('click_tracks')
    op.drop_table('question_impressions')
    op.drop_table('question_offers')
    op.drop_table('questions')
    op.drop_table('offers')
    op.drop_table('survey_responses')
