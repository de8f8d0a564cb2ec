"""
URL mappings for the social-security backend API.

This module registers all API endpoints with their corresponding view
functions.  Resource paths keep the French names used by the front-end
(``personnes``, ``assures``, ``medecins``, ``remboursements``).  Note
that trailing slashes are deliberately omitted.
"""
from django.urls import path, include

from .views import consultations, doctors, health, insured, persons, prescriptions, reimbursements
from .views.auth import jwt_logout_view, jwt_refresh_view, login_view, register_view

urlpatterns = [
    path('', include('django_prometheus.urls')),
    path('healthz', health.healthz),

    # auth
    path('api/auth/register', register_view, name='register_view'),
    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/refresh', jwt_refresh_view, name='jwt_refresh_view'),
    path('api/auth/logout', jwt_logout_view, name='jwt_logout_view'),

    # persons
    path('api/personnes', persons.person_collection),
    path('api/personnes/<int:person_id>', persons.person_detail),
    path('api/personnes/<int:person_id>/exists', persons.person_exists),
    path('api/personnes/<int:person_id>/photo', persons.person_photo),

    # insured
    path('api/assures', insured.insured_collection),
    path('api/assures/stats', insured.insured_stats),
    path('api/assures/numero/<str:number>', insured.insured_by_number),
    path('api/assures/<int:insured_id>', insured.insured_detail),
    path('api/assures/<int:insured_id>/medecin-traitant', insured.insured_referring_doctor),

    # doctors
    path('api/medecins', doctors.doctor_collection),
    path('api/medecins/specialisations', doctors.doctor_specializations),
    path('api/medecins/<int:doctor_id>', doctors.doctor_detail),

    # consultations
    path('api/consultations', consultations.consultation_collection),
    path('api/consultations/stats', consultations.consultation_stats),
    path('api/consultations/<int:consultation_id>', consultations.consultation_detail),
    path('api/consultations/<int:consultation_id>/prescriptions', consultations.consultation_prescriptions),

    # prescriptions
    path('api/prescriptions', prescriptions.prescription_collection),
    path('api/prescriptions/<int:prescription_id>', prescriptions.prescription_detail),
    path('api/prescriptions/assure/<int:insured_id>/compteurs', prescriptions.prescription_counts),

    # reimbursements
    path('api/remboursements', reimbursements.reimbursement_collection),
    path('api/remboursements/stats', reimbursements.reimbursement_stats),
    path('api/remboursements/traiter-tous', reimbursements.reimbursement_process_all),
    path('api/remboursements/consultation/<int:consultation_id>', reimbursements.reimbursement_for_consultation),
    path('api/remboursements/<int:reimbursement_id>', reimbursements.reimbursement_detail),
    path('api/remboursements/<int:reimbursement_id>/detail', reimbursements.reimbursement_breakdown),
    path('api/remboursements/<int:reimbursement_id>/traiter', reimbursements.reimbursement_process),
    path('api/remboursements/<int:reimbursement_id>/refuser', reimbursements.reimbursement_refuse),
    path('api/remboursements/<int:reimbursement_id>/annuler', reimbursements.reimbursement_revert),
    path('api/remboursements/<int:reimbursement_id>/methode', reimbursements.reimbursement_method),
    path('api/remboursements/<int:reimbursement_id>/recalculer', reimbursements.reimbursement_recalculate),
]
