from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers
from web3 import Web3

from .models import User


def validate_wallet(value):
    value = (value or "").strip()
    if not value:
        return None
    if not Web3.is_address(value):
        raise serializers.ValidationError("Not a valid 0x-prefixed, 20-byte address.")
    return value


# -------------------------------------------------------------------
# User serializers
# -------------------------------------------------------------------
class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ("id", "email", "name", "user_type", "wallet_address", "created_at", "updated_at")
        read_only_fields = ("id", "email", "user_type", "created_at", "updated_at")

    def validate_wallet_address(self, value):
        return validate_wallet(value)


class UserCreateSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, required=True, trim_whitespace=False)
    password2 = serializers.CharField(write_only=True, required=True, trim_whitespace=False)

    class Meta:
        model = User
        fields = ("email", "name", "user_type", "wallet_address", "password", "password2")

    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("A user with this email already exists.")
        return value

    def validate_wallet_address(self, value):
        return validate_wallet(value)

    def validate(self, attrs):
        if attrs.get("password") != attrs.get("password2"):
            raise serializers.ValidationError({"password": "Password fields didn't match."})
        try:
            validate_password(attrs.get("password"))
        except DjangoValidationError as exc:
            raise serializers.ValidationError({"password": list(exc.messages)})
        return attrs

    def create(self, validated_data):
        validated_data.pop("password2", None)
        raw_password = validated_data.pop("password")
        return User.objects.create_user(password=raw_password, **validated_data)
