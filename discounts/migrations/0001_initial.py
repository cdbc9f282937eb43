from django.db import migrations, models
import django.db.models.deletion
import django.db.models.functions.text


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('stores', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Discount',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(max_length=50)),
                ('name', models.CharField(max_length=255)),
                ('description', models.TextField(blank=True, default='')),
                ('kind', models.CharField(choices=[('percentage', 'Percentage'), ('fixed_amount', 'Fixed Amount'), ('free_shipping', 'Free Shipping'), ('buy_x_get_y', 'Buy X Get Y')], max_length=20)),
                ('value', models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ('max_discount_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('applies_to', models.CharField(choices=[('all', 'All Products'), ('specific_products', 'Specific Products'), ('specific_categories', 'Specific Categories'), ('specific_customers', 'Specific Customers')], default='all', max_length=30)),
                ('product_ids', models.JSONField(blank=True, default=list)),
                ('category_ids', models.JSONField(blank=True, default=list)),
                ('customer_ids', models.JSONField(blank=True, default=list)),
                ('minimum_requirement_type', models.CharField(blank=True, choices=[('minimum_amount', 'Minimum Amount'), ('minimum_quantity', 'Minimum Quantity')], max_length=20, null=True)),
                ('minimum_requirement_value', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('status', models.CharField(choices=[('active', 'Active'), ('inactive', 'Inactive')], default='active', max_length=10)),
                ('starts_at', models.DateTimeField(blank=True, null=True)),
                ('ends_at', models.DateTimeField(blank=True, null=True)),
                ('usage_limit', models.PositiveIntegerField(blank=True, null=True)),
                ('current_usage', models.PositiveIntegerField(default=0)),
                ('usage_limit_per_customer', models.PositiveIntegerField(blank=True, null=True)),
                ('buy_quantity', models.PositiveIntegerField(blank=True, null=True)),
                ('get_quantity', models.PositiveIntegerField(blank=True, null=True)),
                ('get_discount_type', models.CharField(blank=True, choices=[('percentage', 'Percentage'), ('fixed_amount', 'Fixed Amount'), ('free', 'Free')], max_length=20, null=True)),
                ('get_discount_value', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('is_automatic', models.BooleanField(default=False)),
                ('priority', models.IntegerField(default=0)),
                ('views', models.PositiveIntegerField(default=0)),
                ('last_viewed', models.DateTimeField(blank=True, null=True)),
                ('last_used', models.DateTimeField(blank=True, null=True)),
                ('total_savings', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('total_order_value', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('store', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='discounts', to='stores.store')),
            ],
        ),
        migrations.AddConstraint(
            model_name='discount',
            constraint=models.UniqueConstraint(django.db.models.functions.text.Lower('code'), models.F('store'), name='unique_discount_code_per_store'),
        ),
        migrations.CreateModel(
            name='DiscountCustomerUsage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('customer_id', models.CharField(max_length=100)),
                ('count', models.PositiveIntegerField(default=0)),
                ('discount', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='customer_usages', to='discounts.discount')),
            ],
            options={
                'unique_together': {('discount', 'customer_id')},
            },
        ),
        migrations.CreateModel(
            name='DiscountUsage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('order_id', models.CharField(max_length=100)),
                ('customer_id', models.CharField(blank=True, max_length=100, null=True)),
                ('discount_amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('original_amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('currency', models.CharField(default='USD', max_length=3)),
                ('items', models.JSONField(blank=True, default=list)),
                ('applied_at', models.DateTimeField()),
                ('recorded_at', models.DateTimeField(auto_now_add=True)),
                ('recorded_by', models.CharField(blank=True, default='', max_length=255)),
                ('discount', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='usage_history', to='discounts.discount')),
            ],
            options={
                'ordering': ['-applied_at'],
            },
        ),
    ]
