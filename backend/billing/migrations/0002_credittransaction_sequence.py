from django.db import migrations, models


def number_existing_rows(apps, schema_editor):
    CreditTransaction = apps.get_model("billing", "CreditTransaction")

    user_ids = CreditTransaction.objects.values_list("user_id", flat=True).distinct()
    for user_id in user_ids:
        rows = CreditTransaction.objects.filter(user_id=user_id).order_by("created_at", "id")
        for position, row_id in enumerate(rows.values_list("id", flat=True), start=1):
            CreditTransaction.objects.filter(pk=row_id).update(sequence=position)


class Migration(migrations.Migration):

    dependencies = [
        ("billing", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="credittransaction",
            name="sequence",
            field=models.PositiveBigIntegerField(
                default=0,
                editable=False,
                help_text="Position of the row in the user's ledger, assigned under the account lock",
            ),
            preserve_default=False,
        ),
        migrations.RunPython(number_existing_rows, migrations.RunPython.noop),
        migrations.AddConstraint(
            model_name="credittransaction",
            constraint=models.UniqueConstraint(fields=("user", "sequence"), name="credit_tx_user_sequence_unique"),
        ),
    ]
