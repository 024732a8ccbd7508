import django.db.models.deletion
import uuid
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("accounts", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Credit",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("cents", models.BigIntegerField()),
                ("type", models.CharField(choices=[("purchase", "Purchase"), ("referral", "Referral")], max_length=20)),
                ("details", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="credits",
                        to="accounts.account",
                    ),
                ),
            ],
            options={
                "verbose_name": "Credit Entry",
                "verbose_name_plural": "Credit Entries",
                "db_table": "credits",
                "indexes": [models.Index(fields=["account", "-created_at"], name="credits_account_created_idx")],
            },
        ),
        migrations.CreateModel(
            name="PaymentTransaction",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("gateway", models.CharField(max_length=30)),
                ("gateway_txn_id", models.CharField(max_length=255)),
                ("idempotency_key", models.CharField(max_length=255)),
                ("amount_cents", models.BigIntegerField()),
                ("currency", models.CharField(default="USD", max_length=3)),
                ("status", models.CharField(default="succeeded", max_length=30)),
                ("details", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "verbose_name": "Payment Transaction",
                "verbose_name_plural": "Payment Transactions",
                "db_table": "payment_transactions",
                "indexes": [models.Index(fields=["gateway_txn_id"], name="payment_txn_gateway_txn_idx")],
            },
        ),
        migrations.CreateModel(
            name="ChargeReconciliation",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("gateway", models.CharField(max_length=30)),
                ("gateway_txn_id", models.CharField(max_length=255)),
                ("idempotency_key", models.CharField(max_length=255)),
                ("amount_cents", models.BigIntegerField()),
                ("currency", models.CharField(default="USD", max_length=3)),
                ("account_id", models.BigIntegerField(blank=True, null=True)),
                ("student_id", models.BigIntegerField(blank=True, null=True)),
                ("class_ids", models.JSONField(blank=True, default=list)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending_reversal", "Pending Reversal"),
                            ("reversed", "Reversed"),
                            ("reversal_failed", "Reversal Failed"),
                        ],
                        default="pending_reversal",
                        max_length=20,
                    ),
                ),
                ("failure_reason", models.TextField(blank=True)),
                ("reversal_attempts", models.PositiveSmallIntegerField(default=0)),
                ("reversal_txn_id", models.CharField(blank=True, max_length=255)),
                ("last_error", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("reversed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "verbose_name": "Charge Reconciliation",
                "verbose_name_plural": "Charge Reconciliations",
                "db_table": "charge_reconciliations",
                "indexes": [models.Index(fields=["status", "created_at"], name="charge_recon_status_idx")],
            },
        ),
    ]
