"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00
"""
from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

IN_TRANSIT_TEMPLATES = [
    # sms: 1=name 2=order number 3=tracking url 4=store
    ("sms_in_transit_es", "sms", "es",
     "Hola {{1}}, tu pedido {{2}} de {{4}} está en camino. Síguelo aquí: {{3}}"),
    ("sms_in_transit_it", "sms", "it",
     "Ciao {{1}}, il tuo ordine {{2}} di {{4}} è in viaggio. Seguilo qui: {{3}}"),
    ("sms_in_transit_en", "sms", "en",
     "Hi {{1}}, your order {{2}} from {{4}} is on its way. Track it here: {{3}}"),
    # chat: 1=name 2=order number 3=items 4=store 5=amount
    ("chat_in_transit_es", "chat", "es",
     "Hola {{1}} 👋\nTu pedido {{2}} de {{4}} llegará pronto.\n{{3}}\n"
     "Recuerda tener preparados {{5}} para pagar al repartidor."),
    ("chat_in_transit_it", "chat", "it",
     "Ciao {{1}} 👋\nIl tuo ordine {{2}} di {{4}} arriverà presto.\n{{3}}\n"
     "Ricorda di tenere pronti {{5}} da pagare al corriere."),
    ("chat_in_transit_en", "chat", "en",
     "Hi {{1}} 👋\nYour order {{2}} from {{4}} arrives soon.\n{{3}}\n"
     "Please have {{5}} ready to pay the courier."),
]

def upgrade():
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(256)),
        sa.Column("phone", sa.String(32)),
        sa.Column("email", sa.String(256)),
        sa.Column("country", sa.String(64)),
        sa.Column("status", sa.String(32), nullable=False, server_default="Active"),
        sa.Column("is_blocked", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("orders_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("successful_deliveries", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("ix_customers_phone", "customers", ["phone"])

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("order_number", sa.String(64), nullable=False, unique=True),
        sa.Column("customer_id", sa.Integer, sa.ForeignKey("customers.id")),
        sa.Column("store_name", sa.String(128)),
        sa.Column("order_date", sa.DateTime, server_default=sa.func.now()),
        sa.Column("total_amount", sa.Float, nullable=False, server_default="0"),
        sa.Column("currency", sa.String(8), nullable=False, server_default="EUR"),
        sa.Column("payment_type", sa.String(32), nullable=False, server_default="COD"),
        sa.Column("shipping_address_line1", sa.String(256)),
        sa.Column("shipping_city", sa.String(128)),
        sa.Column("shipping_province", sa.String(128)),
        sa.Column("shipping_postal_code", sa.String(16)),
        sa.Column("shipping_country", sa.String(64)),
        sa.Column("order_status", sa.String(32), nullable=False, server_default="Pending"),
        sa.Column("shipping_status", sa.String(32), nullable=False, server_default="Not Shipped"),
        sa.Column("confirmation_status", sa.String(32), nullable=False, server_default="Pending"),
        sa.Column("confirmation_stage", sa.String(32), nullable=False, server_default="NotStarted"),
        sa.Column("confirmation_notes", sa.Text),
        sa.Column("confirmed_at", sa.DateTime),
        sa.Column("risk_score", sa.Integer),
        sa.Column("risk_level", sa.String(16)),
        sa.Column("risk_action", sa.String(32)),
        sa.Column("risk_assessed_at", sa.DateTime),
        sa.Column("current_assessment_id", sa.Integer),
        sa.Column("tracking_number", sa.String(64)),
        sa.Column("courier", sa.String(128)),
        sa.Column("delivered_date", sa.DateTime),
        sa.Column("return_initiated_date", sa.DateTime),
        sa.Column("return_reason", sa.Text),
        sa.Column("notes", sa.Text),
        sa.Column("internal_notes", sa.Text),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("ix_orders_customer_id", "orders", ["customer_id"])
    op.create_index("ix_orders_order_date", "orders", ["order_date"])
    op.create_index("ix_orders_tracking_number", "orders", ["tracking_number"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("order_id", sa.Integer, sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("product_id", sa.String(64)),
        sa.Column("product_name", sa.String(256), nullable=False),
        sa.Column("sku", sa.String(64)),
        sa.Column("quantity", sa.Integer, nullable=False, server_default="1"),
        sa.Column("unit_price", sa.Float, nullable=False, server_default="0"),
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])

    op.create_table(
        "risk_assessments",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("order_id", sa.Integer, sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("customer_id", sa.Integer, sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("total_score", sa.Integer, nullable=False),
        sa.Column("risk_level", sa.String(16), nullable=False),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("factors", sa.JSON, nullable=False),
        sa.Column("city_zip_match", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("has_house_number", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("address_verified", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_first_order", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_blocked", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("recent_order_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("action_taken", sa.String(32)),
        sa.Column("action_result", sa.String(64)),
        sa.Column("review_notes", sa.Text),
        sa.Column("reviewed_by", sa.String(128)),
        sa.Column("reviewed_at", sa.DateTime),
        sa.Column("forwarded_to_call_center", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("call_attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_call_attempt_at", sa.DateTime),
        sa.Column("call_sids", sa.JSON),
        sa.Column("call_transcription", sa.Text),
        sa.Column("call_confidence", sa.Float),
        sa.Column("call_intent_detected", sa.String(16)),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("ix_risk_assessments_order_id", "risk_assessments", ["order_id"])
    op.create_index("ix_risk_assessments_risk_level", "risk_assessments", ["risk_level"])
    op.create_index("ix_risk_assessments_created_at", "risk_assessments", ["created_at"])
    op.create_foreign_key("fk_orders_current_assessment", "orders", "risk_assessments",
                          ["current_assessment_id"], ["id"])

    op.create_table(
        "call_logs",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("order_id", sa.Integer, sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("call_sid", sa.String(64)),
        sa.Column("attempt_number", sa.Integer, nullable=False),
        sa.Column("call_status", sa.String(32)),
        sa.Column("script_type", sa.String(8)),
        sa.Column("script_language", sa.String(8)),
        sa.Column("speech_result", sa.Text),
        sa.Column("speech_confidence", sa.Float),
        sa.Column("dtmf_input", sa.String(8)),
        sa.Column("intent_detected", sa.String(16)),
        sa.Column("call_duration", sa.Integer),
        sa.Column("completed_at", sa.DateTime),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.UniqueConstraint("order_id", "attempt_number", name="uq_call_logs_order_attempt"),
    )
    op.create_index("ix_call_logs_order_id", "call_logs", ["order_id"])
    op.create_index("ix_call_logs_call_sid", "call_logs", ["call_sid"])

    op.create_table(
        "tracking_history",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("order_id", sa.Integer, sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("tracking_number", sa.String(64), nullable=False),
        sa.Column("carrier_code", sa.String(32)),
        sa.Column("carrier_name", sa.String(128)),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("substatus", sa.String(64)),
        sa.Column("description", sa.Text),
        sa.Column("location", sa.String(256)),
        sa.Column("status_date", sa.DateTime, nullable=False),
        sa.Column("raw_data", sa.JSON),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("ix_tracking_history_order_id", "tracking_history", ["order_id"])
    op.create_index("ix_tracking_history_tracking_number", "tracking_history", ["tracking_number"])

    templates = op.create_table(
        "notification_templates",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("template_name", sa.String(64), nullable=False, unique=True),
        sa.Column("channel", sa.String(16), nullable=False),
        sa.Column("language", sa.String(8), nullable=False),
        sa.Column("subject", sa.String(128)),
        sa.Column("body_template", sa.Text, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("last_used_at", sa.DateTime),
    )

    op.create_table(
        "notification_logs",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("order_id", sa.Integer, sa.ForeignKey("orders.id")),
        sa.Column("customer_id", sa.Integer, sa.ForeignKey("customers.id")),
        sa.Column("channel", sa.String(16), nullable=False),
        sa.Column("template_name", sa.String(64)),
        sa.Column("message_content", sa.Text, nullable=False),
        sa.Column("external_message_id", sa.String(128)),
        sa.Column("external_status", sa.String(32)),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("error", sa.Text),
        sa.Column("sent_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("delivered_at", sa.DateTime),
        sa.Column("read_at", sa.DateTime),
    )
    op.create_index("ix_notification_logs_order_id", "notification_logs", ["order_id"])
    op.create_index("ix_notification_logs_external_message_id", "notification_logs", ["external_message_id"])

    op.create_table(
        "scheduled_tasks",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("kind", sa.String(64), nullable=False),
        sa.Column("dedupe_key", sa.String(128), unique=True),
        sa.Column("payload", sa.JSON),
        sa.Column("due_at", sa.DateTime, nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("finished_at", sa.DateTime),
    )
    op.create_index("ix_scheduled_tasks_status_due", "scheduled_tasks", ["status", "due_at"])

    op.bulk_insert(templates, [
        {"template_name": name, "channel": channel, "language": lang, "body_template": body, "is_active": True}
        for name, channel, lang, body in IN_TRANSIT_TEMPLATES
    ])

def downgrade():
    op.drop_index("ix_scheduled_tasks_status_due", table_name="scheduled_tasks")
    op.drop_table("scheduled_tasks")
    op.drop_index("ix_notification_logs_external_message_id", table_name="notification_logs")
    op.drop_index("ix_notification_logs_order_id", table_name="notification_logs")
    op.drop_table("notification_logs")
    op.drop_table("notification_templates")
    op.drop_index("ix_tracking_history_tracking_number", table_name="tracking_history")
    op.drop_index("ix_tracking_history_order_id", table_name="tracking_history")
    op.drop_table("tracking_history")
    op.drop_index("ix_call_logs_call_sid", table_name="call_logs")
    op.drop_index("ix_call_logs_order_id", table_name="call_logs")
    op.drop_table("call_logs")
    op.drop_constraint("fk_orders_current_assessment", "orders", type_="foreignkey")
    op.drop_index("ix_risk_assessments_created_at", table_name="risk_assessments")
    op.drop_index("ix_risk_assessments_risk_level", table_name="risk_assessments")
    op.drop_index("ix_risk_assessments_order_id", table_name="risk_assessments")
    op.drop_table("risk_assessments")
    op.drop_index("ix_order_items_order_id", table_name="order_items")
    op.drop_table("order_items")
    op.drop_index("ix_orders_tracking_number", table_name="orders")
    op.drop_index("ix_orders_order_date", table_name="orders")
    op.drop_index("ix_orders_customer_id", table_name="orders")
    op.drop_table("orders")
    op.drop_index("ix_customers_phone", table_name="customers")
    op.drop_table("customers")
