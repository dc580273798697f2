from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="RedemptionCounter",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("rule_id", models.CharField(max_length=255)),
                ("customer_id", models.CharField(blank=True, default="", max_length=255)),
                ("count", models.PositiveIntegerField(default=0)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "tally_redemption_counters",
                "ordering": ["rule_id", "customer_id"],
            },
        ),
        migrations.AddConstraint(
            model_name="redemptioncounter",
            constraint=models.UniqueConstraint(
                fields=("rule_id", "customer_id"),
                name="uq_redemption_rule_customer",
            ),
        ),
    ]
