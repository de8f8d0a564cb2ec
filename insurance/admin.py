"""
Django admin registrations for the insurance models.

Superusers can inspect and correct records via ``/admin/``.  The
reimbursement admin is read-only on status fields: transitions must go
through the API so that they are locked, logged and audited.
"""

from django.contrib import admin

from .models import (
    AuditEvent,
    Consultation,
    Doctor,
    Insured,
    Media,
    Person,
    Prescription,
    Reimbursement,
    User,
)


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'roles', 'person', 'is_active', 'is_staff', 'is_superuser')
    list_filter = ('is_active', 'is_staff')
    search_fields = ('username',)


@admin.register(Person)
class PersonAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'first_name', 'birth_date', 'email', 'phone', 'created_at')
    search_fields = ('name', 'first_name', 'email', 'phone')


@admin.register(Insured)
class InsuredAdmin(admin.ModelAdmin):
    list_display = ('person', 'insurance_number', 'payment_method', 'referring_doctor')
    list_filter = ('payment_method',)
    search_fields = ('insurance_number', 'person__name', 'person__first_name')


@admin.register(Doctor)
class DoctorAdmin(admin.ModelAdmin):
    list_display = ('person', 'specialization')
    search_fields = ('person__name', 'specialization')


class PrescriptionInline(admin.TabularInline):
    model = Prescription
    extra = 0


@admin.register(Consultation)
class ConsultationAdmin(admin.ModelAdmin):
    list_display = ('id', 'date', 'insured', 'doctor', 'cost')
    list_filter = ('date',)
    inlines = [PrescriptionInline]


@admin.register(Reimbursement)
class ReimbursementAdmin(admin.ModelAdmin):
    list_display = ('id', 'consultation', 'amount', 'payment_method', 'status', 'processed_at')
    list_filter = ('status', 'payment_method')
    readonly_fields = ('amount', 'status', 'processed_at', 'refusal_reason', 'created_at')


@admin.register(Media)
class MediaAdmin(admin.ModelAdmin):
    list_display = ('id', 'original_name', 'content_type', 'size', 'created_at')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'action', 'user', 'object_type', 'object_id')
    list_filter = ('action', 'object_type')
