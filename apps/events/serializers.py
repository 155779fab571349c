
from django.contrib.auth import get_user_model
from rest_framework import serializers
from . import models


class EventSerializer(serializers.ModelSerializer):
    company = serializers.PrimaryKeyRelatedField(read_only=True)

    class Meta:
        model = models.Event
        fields = (
            "id", "company", "title", "description", "start_at", "end_at",
            "postback_url", "is_active", "created_at", "updated_at",
        )
        read_only_fields = ("id", "company", "created_at", "updated_at")

    def validate(self, attrs):
        start = attrs.get("start_at", getattr(self.instance, "start_at", None))
        end = attrs.get("end_at", getattr(self.instance, "end_at", None))
        if start and end and end < start:
            raise serializers.ValidationError({"end_at": "end_at must not be before start_at"})
        return attrs


class TicketOwnerSerializer(serializers.Serializer):
    id = serializers.UUIDField(read_only=True)
    email = serializers.EmailField(read_only=True)
    wallet_address = serializers.CharField(read_only=True, allow_null=True)


class TicketSerializer(serializers.ModelSerializer):
    owner = TicketOwnerSerializer(read_only=True)
    owner_email = serializers.EmailField(write_only=True)
    event = serializers.PrimaryKeyRelatedField(queryset=models.Event.objects.filter(is_deleted=False))

    class Meta:
        model = models.Ticket
        fields = (
            "id", "event", "owner", "owner_email", "external_id", "name", "description",
            "banner_url", "amount", "seat", "sector", "rarity", "status", "start_at",
            "token_id", "tx_hash", "created_at", "updated_at",
        )
        # rarity is assigned by the contract at mint time
        read_only_fields = (
            "id", "external_id", "rarity", "status", "token_id", "tx_hash", "created_at", "updated_at",
        )

    def validate_event(self, event):
        if not event.is_active:
            raise serializers.ValidationError("Event is not active")
        request = self.context.get("request")
        user = getattr(request, "user", None)
        if user is not None and not user.is_staff and event.company_id != user.id:
            raise serializers.ValidationError("You can only issue tickets for your own events")
        return event

    def create(self, validated_data):
        email = validated_data.pop("owner_email")
        User = get_user_model()
        owner = User.objects.filter(email__iexact=email).first()
        if owner is None:
            # ticket holders are invited by email; they set a password and wallet later
            owner = User.objects.create_user(email=email)
        validated_data["owner"] = owner
        return super().create(validated_data)


class MintOutcomeSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=["already_minted", "minted", "not_yet_eligible", "rejected"])
    token_id = serializers.CharField(allow_null=True)
    tx_hash = serializers.CharField(allow_null=True)
    rarity = serializers.CharField(allow_null=True)
    reason = serializers.CharField(allow_null=True)
    code = serializers.ChoiceField(choices=["not_started", "mint_in_progress"], allow_null=True)
    wait_seconds = serializers.IntegerField(allow_null=True)
