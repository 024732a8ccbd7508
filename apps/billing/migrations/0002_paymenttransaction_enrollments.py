from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("billing", "0001_initial"),
        ("enrollments", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="paymenttransaction",
            name="enrollments",
            field=models.ManyToManyField(
                db_table="payment_transaction_enrollments",
                related_name="payment_transactions",
                to="enrollments.enrollment",
            ),
        ),
    ]
