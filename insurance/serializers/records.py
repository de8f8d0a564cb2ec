"""
Input shapes for persons, insured persons and doctors.

Only the payload shape is checked here; the business rules (formats,
uniqueness, generalist constraints) are enforced by the services so the
same rules apply whatever the caller.
"""
from rest_framework import serializers


class PersonSerializer(serializers.Serializer):
    nom = serializers.CharField(source='name', max_length=100, required=False, allow_blank=True, allow_null=True)
    prenom = serializers.CharField(source='first_name', max_length=100, required=False, allow_blank=True,
                                   allow_null=True)
    dateNaissance = serializers.DateField(source='birth_date', required=False, allow_null=True)
    genre = serializers.CharField(source='gender', required=False, allow_blank=True, allow_null=True)
    adresse = serializers.CharField(source='address', max_length=255, required=False, allow_blank=True,
                                    allow_null=True)
    telephone = serializers.CharField(source='phone', max_length=20, required=False, allow_blank=True,
                                      allow_null=True)
    email = serializers.CharField(max_length=254, required=False, allow_blank=True, allow_null=True)


class InsuredSerializer(PersonSerializer):
    personneId = serializers.IntegerField(source='person_id', required=False, allow_null=True)
    numeroAssurance = serializers.CharField(source='insurance_number', required=False, allow_blank=True,
                                            allow_null=True)
    methodePaiementPreferee = serializers.CharField(source='payment_method', required=False, allow_blank=True,
                                                    allow_null=True)
    medecinTraitantId = serializers.IntegerField(source='referring_doctor_id', required=False, allow_null=True)


class ReferringDoctorSerializer(serializers.Serializer):
    medecinTraitantId = serializers.IntegerField(source='referring_doctor_id', required=False, allow_null=True)


class DoctorSerializer(PersonSerializer):
    personneId = serializers.IntegerField(source='person_id', required=False, allow_null=True)
    specialisation = serializers.CharField(source='specialization', required=False, allow_blank=True,
                                           allow_null=True)
