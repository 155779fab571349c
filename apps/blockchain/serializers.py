from rest_framework import serializers


class ProcessRequestSerializer(serializers.Serializer):
    limit = serializers.IntegerField(min_value=1, max_value=500, required=False)

    def get_fields(self):
        fields = super().get_fields()
        # `async` is a keyword, so it cannot be declared as a class attribute
        fields["async"] = serializers.BooleanField(default=False, help_text="Queue the sweep instead of running it inline")
        return fields


class SyncSummarySerializer(serializers.Serializer):
    processed = serializers.IntegerField()
    minted = serializers.IntegerField()
    already_minted = serializers.IntegerField()
    not_yet_eligible = serializers.IntegerField()
    rejected = serializers.IntegerField()
    failed = serializers.IntegerField()


class ConfirmationReceiptSerializer(serializers.Serializer):
    message = serializers.CharField()
    received_at = serializers.DateTimeField()
