from rest_framework import serializers


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField()

    def validate_username(self, v):
        v = (v or '').strip()
        if not v:
            raise serializers.ValidationError('username cannot be empty')
        return v

    def validate_password(self, v):
        if not v:
            raise serializers.ValidationError('password cannot be empty')
        return v


class RegisterSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150)
    password = serializers.CharField(write_only=True)
    roles = serializers.ListField(child=serializers.CharField(), required=False, allow_null=True)
    personneId = serializers.IntegerField(source='person_id', required=False, allow_null=True)


class LogoutSerializer(serializers.Serializer):
    refresh = serializers.CharField(required=False, allow_blank=True)
