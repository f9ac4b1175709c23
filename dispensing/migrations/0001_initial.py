import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Patient',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('cedula', models.CharField(max_length=10, unique=True)),
                ('qr_code', models.CharField(blank=True, max_length=64, null=True, unique=True)),
                ('first_name', models.CharField(max_length=50)),
                ('last_name', models.CharField(max_length=50)),
                ('email', models.EmailField(blank=True, max_length=254, null=True)),
                ('phone', models.CharField(blank=True, max_length=30, null=True)),
                ('active', models.BooleanField(default=True)),
                ('registered_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'patients',
                'indexes': [models.Index(fields=['active'], name='patients_active_idx')],
            },
        ),
        migrations.CreateModel(
            name='Dispenser',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('dispenser_id', models.CharField(max_length=50, unique=True)),
                ('ip_address', models.GenericIPAddressField()),
                ('port', models.PositiveIntegerField(default=8080)),
                ('registered_at', models.DateTimeField()),
                ('last_heartbeat', models.DateTimeField()),
                ('metadata', models.JSONField(blank=True, default=dict)),
            ],
            options={
                'db_table': 'dispensers',
            },
        ),
        migrations.CreateModel(
            name='Prescription',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('medicine_name', models.CharField(max_length=100)),
                ('medicine_code', models.CharField(blank=True, db_index=True, max_length=50, null=True)),
                ('dosage_amount', models.DecimalField(decimal_places=2, max_digits=8)),
                ('dosage_unit', models.CharField(
                    choices=[('mg', 'mg'), ('g', 'g'), ('ml', 'ml'), ('L', 'L'), ('tabletas', 'tabletas'),
                             ('cápsulas', 'cápsulas'), ('gotas', 'gotas'), ('UI', 'UI')],
                    default='tabletas', max_length=20,
                )),
                ('frequency_times', models.PositiveSmallIntegerField(default=1)),
                ('frequency_period', models.CharField(
                    choices=[('daily', 'Daily'), ('every_8_hours', 'Every 8 hours'),
                             ('every_12_hours', 'Every 12 hours'), ('every_24_hours', 'Every 24 hours'),
                             ('weekly', 'Weekly'), ('monthly', 'Monthly')],
                    default='daily', max_length=20,
                )),
                ('max_daily_doses', models.PositiveSmallIntegerField()),
                ('doctor_name', models.CharField(max_length=100)),
                ('doctor_license', models.CharField(max_length=50)),
                ('doctor_specialty', models.CharField(blank=True, max_length=100, null=True)),
                ('start_date', models.DateTimeField()),
                ('end_date', models.DateTimeField()),
                ('status', models.CharField(
                    choices=[('active', 'Active'), ('completed', 'Completed'),
                             ('cancelled', 'Cancelled'), ('expired', 'Expired')],
                    default='active', max_length=20,
                )),
                ('notes', models.TextField(blank=True, max_length=500, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('patient', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='prescriptions', to='dispensing.patient',
                )),
            ],
            options={
                'db_table': 'prescriptions',
                'indexes': [
                    models.Index(fields=['patient', 'status'], name='prescriptions_patient_status'),
                    models.Index(fields=['start_date', 'end_date'], name='prescriptions_window_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(
                        condition=models.Q(end_date__gt=models.F('start_date')),
                        name='prescription_end_after_start',
                    ),
                    models.CheckConstraint(
                        condition=models.Q(max_daily_doses__gte=1) & models.Q(max_daily_doses__lte=10),
                        name='prescription_max_daily_doses_range',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='Dispense',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('identifier', models.CharField(blank=True, default='', max_length=64)),
                ('auth_method', models.CharField(choices=[('qr', 'QR code'), ('cedula', 'Cédula')], max_length=10)),
                ('medicine_name', models.CharField(max_length=100)),
                ('dosage_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=8, null=True)),
                ('dosage_unit', models.CharField(blank=True, max_length=20, null=True)),
                ('dispenser_id', models.CharField(blank=True, max_length=50, null=True)),
                ('session_id', models.CharField(blank=True, db_index=True, max_length=64, null=True)),
                ('status', models.CharField(
                    choices=[('successful', 'Successful'), ('failed', 'Failed'), ('partial', 'Partial')],
                    max_length=20,
                )),
                ('dispensed_at', models.DateTimeField()),
                ('error_code', models.CharField(blank=True, max_length=50, null=True)),
                ('error_message', models.TextField(blank=True, null=True)),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('user_agent', models.CharField(blank=True, max_length=500, null=True)),
                ('response_time_ms', models.PositiveIntegerField(blank=True, null=True)),
                ('notes', models.TextField(blank=True, null=True)),
                ('patient', models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.PROTECT,
                    related_name='dispenses', to='dispensing.patient',
                )),
                ('prescription', models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.PROTECT,
                    related_name='dispenses', to='dispensing.prescription',
                )),
            ],
            options={
                'db_table': 'dispenses',
                'indexes': [
                    models.Index(
                        fields=['patient', 'prescription', 'status', 'dispensed_at'],
                        name='dispenses_guard_idx',
                    ),
                    models.Index(fields=['dispensed_at'], name='dispenses_dispensed_at_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='DispenseSession',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('session_id', models.CharField(max_length=64, unique=True)),
                ('status', models.CharField(
                    choices=[('pending', 'Pending'), ('dispensed', 'Dispensed'),
                             ('expired', 'Expired'), ('cancelled', 'Cancelled')],
                    default='pending', max_length=20,
                )),
                ('auth_method', models.CharField(choices=[('qr', 'QR code'), ('cedula', 'Cédula')], max_length=10)),
                ('patient_name', models.CharField(max_length=101)),
                ('patient_cedula', models.CharField(max_length=10)),
                ('patient_qr_code', models.CharField(blank=True, max_length=64, null=True)),
                ('medicine_name', models.CharField(max_length=100)),
                ('dosage_amount', models.DecimalField(decimal_places=2, max_digits=8)),
                ('dosage_unit', models.CharField(max_length=20)),
                ('dispenser_id', models.CharField(max_length=50)),
                ('created_at', models.DateTimeField()),
                ('expires_at', models.DateTimeField()),
                ('dispensed_at', models.DateTimeField(blank=True, null=True)),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('user_agent', models.CharField(blank=True, max_length=500, null=True)),
                ('patient', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='sessions', to='dispensing.patient',
                )),
                ('prescription', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='sessions', to='dispensing.prescription',
                )),
            ],
            options={
                'db_table': 'dispense_sessions',
                'indexes': [
                    models.Index(fields=['status', 'expires_at'], name='sessions_status_expiry_idx'),
                    models.Index(fields=['dispenser_id', 'status', 'created_at'], name='sessions_dispenser_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(
                        condition=models.Q(status='pending'),
                        fields=('patient',),
                        name='one_pending_session_per_patient',
                    ),
                ],
            },
        ),
    ]
