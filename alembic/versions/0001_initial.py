from alembic import op
import sqlalchemy as sa


revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # businesses
    op.create_table(
        'businesses',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('industry', sa.String(128), nullable=True),
        sa.Column('brand_voice', sa.String(255), nullable=True),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('timezone', sa.String(64), nullable=False, server_default='America/New_York'),
        sa.Column('owner_name', sa.String(255), nullable=True),
        sa.Column('owner_email', sa.String(255), nullable=True, index=True),
        sa.Column('owner_phone', sa.String(32), nullable=True),
        sa.Column('twilio_number', sa.String(32), nullable=True, unique=True, index=True),
        sa.Column('api_key', sa.String(128), nullable=True, unique=True, index=True),
        sa.Column('stripe_customer_id', sa.String(64), nullable=True, index=True),
        sa.Column('subscription_id', sa.String(64), nullable=True),
        sa.Column('subscription_status', sa.String(32), nullable=True),
        sa.Column('subscription_plan', sa.String(64), nullable=True),
        sa.Column('subscription_current_period_end', sa.Integer, nullable=True),
        sa.Column('subscription_canceled_at', sa.Integer, nullable=True),
        sa.Column('onboarding_step', sa.String(32), nullable=False, server_default='welcome'),
        sa.Column('onboarding_complete', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('onboarded_at', sa.Integer, nullable=True),
        sa.Column('missed_call_enabled', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('speed_to_lead_enabled', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('morning_briefing_enabled', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_paused', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('google_review_url', sa.String(512), nullable=True),
        sa.Column('google_connected', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('google_email', sa.String(255), nullable=True),
        sa.Column('google_access_token_enc', sa.Text, nullable=True),
        sa.Column('google_refresh_token_enc', sa.Text, nullable=True),
        sa.Column('google_token_expires_at', sa.Integer, nullable=True),
        sa.Column('google_scope', sa.Text, nullable=True),
        sa.Column('google_connected_at', sa.Integer, nullable=True),
        sa.Column('meta_page_id', sa.String(64), nullable=True),
        sa.Column('meta_ig_user_id', sa.String(64), nullable=True),
        sa.Column('meta_page_token_enc', sa.Text, nullable=True),
        sa.Column('created_at', sa.Integer, nullable=False),
    )

    # contacts
    op.create_table(
        'contacts',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('business_id', sa.Integer, sa.ForeignKey('businesses.id'), index=True, nullable=False),
        sa.Column('name', sa.String(255), nullable=True, index=True),
        sa.Column('phone', sa.String(32), nullable=True, index=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('opted_out', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.Integer, nullable=False),
    )

    # conversations + messages
    op.create_table(
        'conversations',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('business_id', sa.Integer, sa.ForeignKey('businesses.id'), index=True, nullable=False),
        sa.Column('phone', sa.String(32), index=True, nullable=False),
        sa.Column('status', sa.String(16), nullable=False, server_default='active'),
        sa.Column('is_owner', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('source', sa.String(32), nullable=False, server_default='sms'),
        sa.Column('context_json', sa.Text, nullable=True),
        sa.Column('last_message_at', sa.Integer, index=True, nullable=False),
        sa.Column('created_at', sa.Integer, nullable=False),
    )
    op.create_table(
        'messages',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('conversation_id', sa.Integer, sa.ForeignKey('conversations.id'), index=True, nullable=False),
        sa.Column('business_id', sa.Integer, sa.ForeignKey('businesses.id'), index=True, nullable=False),
        sa.Column('direction', sa.String(16), nullable=False),
        sa.Column('content', sa.Text, nullable=False, server_default=''),
        sa.Column('media_urls_json', sa.Text, nullable=True),
        sa.Column('phone', sa.String(32), nullable=True),
        sa.Column('is_owner', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('ai_generated', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('intent', sa.String(32), nullable=True),
        sa.Column('twilio_sid', sa.String(64), nullable=True),
        sa.Column('created_at', sa.Integer, index=True, nullable=False),
    )

    op.create_table(
        'missed_calls',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('business_id', sa.Integer, sa.ForeignKey('businesses.id'), index=True, nullable=False),
        sa.Column('phone', sa.String(32), nullable=False),
        sa.Column('call_sid', sa.String(64), nullable=True),
        sa.Column('status', sa.String(16), nullable=False, server_default='pending'),
        sa.Column('conversation_id', sa.Integer, nullable=True),
        sa.Column('texted_at', sa.Integer, nullable=True),
        sa.Column('created_at', sa.Integer, nullable=False),
    )

    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('business_id', sa.Integer, sa.ForeignKey('businesses.id'), index=True, nullable=False),
        sa.Column('contact_name', sa.String(255), nullable=True),
        sa.Column('contact_phone', sa.String(32), nullable=False),
        sa.Column('amount_cents', sa.Integer, nullable=False),
        sa.Column('description', sa.String(512), nullable=True),
        sa.Column('status', sa.String(16), index=True, nullable=False, server_default='sent'),
        sa.Column('stripe_payment_link', sa.String(512), nullable=True),
        sa.Column('stripe_payment_link_id', sa.String(128), nullable=True, index=True),
        sa.Column('sent_at', sa.Integer, nullable=True),
        sa.Column('paid_at', sa.Integer, nullable=True),
        sa.Column('last_reminder_at', sa.Integer, nullable=True),
        sa.Column('last_reminder_attempt_at', sa.Integer, nullable=True),
        sa.Column('reminder_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.Integer, index=True, nullable=False),
    )

    op.create_table(
        'daily_stats',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('business_id', sa.Integer, sa.ForeignKey('businesses.id'), index=True, nullable=False),
        sa.Column('date', sa.String(10), index=True, nullable=False),
        sa.Column('customer_messages', sa.Integer, nullable=False, server_default='0'),
        sa.Column('owner_messages', sa.Integer, nullable=False, server_default='0'),
        sa.Column('missed_calls', sa.Integer, nullable=False, server_default='0'),
        sa.Column('new_leads', sa.Integer, nullable=False, server_default='0'),
        sa.Column('invoices_sent', sa.Integer, nullable=False, server_default='0'),
        sa.Column('invoices_amount_sent', sa.Integer, nullable=False, server_default='0'),
        sa.Column('invoices_paid', sa.Integer, nullable=False, server_default='0'),
        sa.Column('revenue_cents', sa.Integer, nullable=False, server_default='0'),
        sa.Column('review_requests', sa.Integer, nullable=False, server_default='0'),
        sa.Column('posts_published', sa.Integer, nullable=False, server_default='0'),
        sa.Column('updated_at', sa.Integer, nullable=False),
        sa.UniqueConstraint('business_id', 'date', name='uq_daily_stats_business_date'),
    )

    # media + social
    op.create_table(
        'media',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('business_id', sa.Integer, sa.ForeignKey('businesses.id'), index=True, nullable=False),
        sa.Column('message_sid', sa.String(64), nullable=True),
        sa.Column('storage_path', sa.String(512), nullable=False),
        sa.Column('public_url', sa.String(1024), index=True, nullable=False),
        sa.Column('original_url', sa.String(1024), nullable=True),
        sa.Column('content_type', sa.String(64), nullable=True),
        sa.Column('is_video', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_image', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('used_in_post', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('used_at', sa.Integer, nullable=True),
        sa.Column('created_at', sa.Integer, index=True, nullable=False),
    )
    op.create_table(
        'social_drafts',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('business_id', sa.Integer, sa.ForeignKey('businesses.id'), index=True, nullable=False),
        sa.Column('posts_json', sa.Text, nullable=False),
        sa.Column('media_urls_json', sa.Text, nullable=True),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending_approval'),
        sa.Column('created_at', sa.Integer, nullable=False),
    )
    op.create_table(
        'scheduled_posts',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('business_id', sa.Integer, sa.ForeignKey('businesses.id'), index=True, nullable=False),
        sa.Column('draft_id', sa.Integer, nullable=True),
        sa.Column('platform', sa.String(32), nullable=False),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('hashtags_json', sa.Text, nullable=True),
        sa.Column('media_url', sa.String(1024), nullable=True),
        sa.Column('scheduled_for', sa.Integer, index=True, nullable=False),
        sa.Column('status', sa.String(16), index=True, nullable=False, server_default='scheduled'),
        sa.Column('external_id', sa.String(128), nullable=True),
        sa.Column('error', sa.Text, nullable=True),
        sa.Column('posted_at', sa.Integer, nullable=True),
        sa.Column('created_at', sa.Integer, index=True, nullable=False),
    )
    op.create_table(
        'post_engagement',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('business_id', sa.Integer, sa.ForeignKey('businesses.id'), index=True, nullable=False),
        sa.Column('platform', sa.String(32), index=True, nullable=False),
        sa.Column('external_id', sa.String(128), nullable=True),
        sa.Column('content_preview', sa.String(128), nullable=True),
        sa.Column('status', sa.String(16), nullable=False, server_default='tracking'),
        sa.Column('likes', sa.Integer, nullable=False, server_default='0'),
        sa.Column('comments', sa.Integer, nullable=False, server_default='0'),
        sa.Column('shares', sa.Integer, nullable=False, server_default='0'),
        sa.Column('reach', sa.Integer, nullable=False, server_default='0'),
        sa.Column('engagement_rate', sa.Float, nullable=False, server_default='0'),
        sa.Column('posted_at', sa.Integer, nullable=False),
        sa.Column('last_checked', sa.Integer, nullable=True),
    )

    op.create_table(
        'leads',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('business_id', sa.Integer, sa.ForeignKey('businesses.id'), index=True, nullable=False),
        sa.Column('phone', sa.String(32), index=True, nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('source', sa.String(32), nullable=False, server_default='web_form'),
        sa.Column('message', sa.Text, nullable=True),
        sa.Column('source_details_json', sa.Text, nullable=True),
        sa.Column('status', sa.String(16), nullable=False, server_default='new'),
        sa.Column('conversation_id', sa.Integer, nullable=True),
        sa.Column('responded_at', sa.Integer, nullable=True),
        sa.Column('created_at', sa.Integer, index=True, nullable=False),
    )

    # ledgers
    op.create_table(
        'events_ledger',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('ts', sa.Integer, nullable=False),
        sa.Column('business_id', sa.String(64), nullable=True, index=True),
        sa.Column('name', sa.String(64), nullable=False),
        sa.Column('payload', sa.Text, nullable=True),
    )
    op.create_table(
        'dead_letters',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('business_id', sa.Integer, nullable=True, index=True),
        sa.Column('provider', sa.String(32), nullable=False),
        sa.Column('reason', sa.Text, nullable=False),
        sa.Column('attempts', sa.Integer, nullable=False, server_default='1'),
        sa.Column('payload', sa.Text, nullable=True),
        sa.Column('created_at', sa.Integer, nullable=False),
    )


def downgrade():
    for table in (
        'dead_letters',
        'events_ledger',
        'leads',
        'post_engagement',
        'scheduled_posts',
        'social_drafts',
        'media',
        'daily_stats',
        'invoices',
        'missed_calls',
        'messages',
        'conversations',
        'contacts',
        'businesses',
    ):
        op.drop_table(table)
