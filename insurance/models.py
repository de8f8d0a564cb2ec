"""
Database models for the social-security backend.

These models capture the administrative records of the organisation:
persons, the insured and doctor profiles composed on top of them,
consultations, prescriptions and the reimbursements owed for each
consultation.  Login accounts carry an explicit list of roles.
"""
from __future__ import annotations

import datetime
import os
import uuid

from django.contrib.auth.models import AbstractUser
from django.db import models


PAYMENT_BANK_TRANSFER = 'bank_transfer'
PAYMENT_CASH = 'cash'
PAYMENT_METHOD_CHOICES = (
    (PAYMENT_BANK_TRANSFER, 'Bank transfer'),
    (PAYMENT_CASH, 'Cash'),
)


def _media_upload(instance, filename: str) -> str:
    ext = os.path.splitext(filename)[1].lower()
    return f"photos/{datetime.date.today().strftime('%Y/%m')}/{uuid.uuid4().hex}{ext}"


class Media(models.Model):
    """An uploaded file, used for person photos."""
    file = models.FileField(upload_to=_media_upload, max_length=512)
    original_name = models.CharField(max_length=255, blank=True, default='')
    content_type = models.CharField(max_length=128, blank=True, default='')
    size = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"media {self.id} {self.original_name}"


class Person(models.Model):
    """Civil identity shared by insured persons and doctors.

    A person exists on its own; the :class:`Insured` and :class:`Doctor`
    profiles are attached to it through one-to-one links.
    """
    GENDER_MALE = 'M'
    GENDER_FEMALE = 'F'
    GENDER_OTHER = 'OTHER'
    GENDER_CHOICES = (
        (GENDER_MALE, 'Male'),
        (GENDER_FEMALE, 'Female'),
        (GENDER_OTHER, 'Other'),
    )

    name = models.CharField(max_length=100, db_index=True)
    first_name = models.CharField(max_length=100, blank=True, default='')
    birth_date = models.DateField()
    gender = models.CharField(max_length=5, choices=GENDER_CHOICES)
    address = models.CharField(max_length=255)
    phone = models.CharField(max_length=20, blank=True, default='')
    email = models.EmailField(max_length=254, unique=True)
    photo = models.ForeignKey(Media, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.name} {self.first_name}".strip()

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.name}".strip()


class Doctor(models.Model):
    """Doctor profile of a person.

    An empty specialization marks a generalist; anything else is a
    specialist.
    """
    person = models.OneToOneField(Person, on_delete=models.CASCADE, primary_key=True, related_name='doctor')
    specialization = models.CharField(max_length=100, blank=True, default='', db_index=True)

    def __str__(self) -> str:
        return f"Dr {self.person} ({self.category})"

    @property
    def is_generalist(self) -> bool:
        return not (self.specialization or '').strip()

    @property
    def category(self) -> str:
        return 'generalist' if self.is_generalist else 'specialist'


class Insured(models.Model):
    """Insured profile of a person, eligible for reimbursement."""
    person = models.OneToOneField(Person, on_delete=models.CASCADE, primary_key=True, related_name='insured')
    insurance_number = models.CharField(max_length=13, unique=True)
    payment_method = models.CharField(max_length=16, choices=PAYMENT_METHOD_CHOICES, db_index=True)
    referring_doctor = models.ForeignKey(
        Doctor, null=True, blank=True, on_delete=models.PROTECT, related_name='patients'
    )

    def __str__(self) -> str:
        return f"{self.person} #{self.insurance_number}"


class Consultation(models.Model):
    insured = models.ForeignKey(Insured, on_delete=models.PROTECT, related_name='consultations')
    doctor = models.ForeignKey(Doctor, on_delete=models.PROTECT, related_name='consultations')
    date = models.DateTimeField(db_index=True)
    cost = models.DecimalField(max_digits=10, decimal_places=2)
    notes = models.TextField(blank=True, default='')

    class Meta:
        indexes = [
            models.Index(fields=['insured', 'date'], name='consult_insured_date_idx'),
            models.Index(fields=['doctor', 'date'], name='consult_doctor_date_idx'),
        ]

    def __str__(self) -> str:
        return f"consult {self.id} i={self.insured_id} d={self.doctor_id}"


class Prescription(models.Model):
    TYPE_MEDICATION = 'medication'
    TYPE_SPECIALIST_REFERRAL = 'specialist_referral'
    TYPE_CHOICES = (
        (TYPE_MEDICATION, 'Medication'),
        (TYPE_SPECIALIST_REFERRAL, 'Specialist referral'),
    )

    consultation = models.ForeignKey(Consultation, on_delete=models.CASCADE, related_name='prescriptions')
    type = models.CharField(max_length=24, choices=TYPE_CHOICES, db_index=True)
    medication_details = models.TextField(blank=True, default='')
    specialist = models.ForeignKey(
        Doctor, null=True, blank=True, on_delete=models.PROTECT, related_name='referrals'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"presc {self.id} {self.type} consult={self.consultation_id}"


class Reimbursement(models.Model):
    # --- Lifecycle status ---
    STATUS_PENDING = 'pending'
    STATUS_PROCESSED = 'processed'
    STATUS_REFUSED = 'refused'
    STATUS_CHOICES = (
        (STATUS_PENDING, 'pending'),
        (STATUS_PROCESSED, 'processed'),
        (STATUS_REFUSED, 'refused'),
    )

    consultation = models.OneToOneField(Consultation, on_delete=models.CASCADE, related_name='reimbursement')
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    payment_method = models.CharField(max_length=16, choices=PAYMENT_METHOD_CHOICES)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING)
    processed_at = models.DateTimeField(blank=True, null=True)
    refusal_reason = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['status', 'created_at'], name='reimb_status_created_idx'),
            models.Index(fields=['processed_at'], name='reimb_processed_idx'),
        ]

    def __str__(self) -> str:
        return f"reimb {self.id} consult={self.consultation_id} {self.status}"


class User(AbstractUser):
    """Login account with an explicit list of roles.

    Roles are assigned at registration and never derived from the
    username or from the linked person.
    """
    ROLE_ADMIN = 'ADMIN'
    ROLE_USER = 'USER'
    ROLE_INSURED = 'INSURED'
    ROLE_DOCTOR = 'DOCTOR'
    ROLES = (ROLE_ADMIN, ROLE_USER, ROLE_INSURED, ROLE_DOCTOR)

    roles = models.JSONField(default=list, blank=True)
    person = models.OneToOneField(
        Person, null=True, blank=True, on_delete=models.SET_NULL, related_name='account'
    )

    def __str__(self) -> str:
        return f"{self.username} ({','.join(self.roles or [])})"

    def has_role(self, *roles: str) -> bool:
        return any(r in (self.roles or []) for r in roles)


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.IntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='audit_action_created_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='audit_object_created_idx'),
        ]
