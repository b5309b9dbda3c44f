from rest_framework import serializers
from .models import Region, District, Branch

NOTIFICATION_CHANNELS = ('email', 'sms', 'whatsapp')


class RegionSerializer(serializers.ModelSerializer):
    regional_manager_name = serializers.CharField(source='regional_manager.display_name', read_only=True, default=None)
    district_count = serializers.IntegerField(source='districts.count', read_only=True)

    class Meta:
        model = Region
        fields = ['id', 'name', 'description', 'regional_manager', 'regional_manager_name',
                  'district_count', 'created_at', 'updated_at']

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError('Name is required')
        return value

    def validate_regional_manager(self, value):
        if value is not None and value.role != 'regional_manager':
            raise serializers.ValidationError('Selected user is not a regional manager')
        return value


class DistrictSerializer(serializers.ModelSerializer):
    region_name = serializers.CharField(source='region.name', read_only=True)

    class Meta:
        model = District
        fields = ['id', 'name', 'description', 'region', 'region_name', 'created_at', 'updated_at']

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError('Name is required')
        return value


class BranchSerializer(serializers.ModelSerializer):
    region_name = serializers.CharField(source='region.name', read_only=True)
    district_name = serializers.CharField(source='district.name', read_only=True)

    class Meta:
        model = Branch
        fields = ['id', 'name', 'description', 'location', 'region', 'region_name', 'district',
                  'district_name', 'notification_settings', 'alert_frequency', 'created_at', 'updated_at']
        read_only_fields = ['notification_settings', 'alert_frequency']

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError('Name is required')
        return value

    def validate(self, attrs):
        region = attrs.get('region', getattr(self.instance, 'region', None))
        district = attrs.get('district', getattr(self.instance, 'district', None))
        if region and district and district.region_id != region.id:
            raise serializers.ValidationError({'district': 'District does not belong to the selected region'})
        return attrs


class BranchSettingsSerializer(serializers.ModelSerializer):
    """Notification toggles and alert frequency of a branch"""

    class Meta:
        model = Branch
        fields = ['id', 'name', 'notification_settings', 'alert_frequency']
        read_only_fields = ['id', 'name']

    def validate_notification_settings(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError('Expected an object of channel toggles')
        unknown = set(value) - set(NOTIFICATION_CHANNELS)
        if unknown:
            raise serializers.ValidationError(f"Unknown channels: {', '.join(sorted(unknown))}")
        if not all(isinstance(v, bool) for v in value.values()):
            raise serializers.ValidationError('Channel toggles must be true or false')
        merged = dict(self.instance.notification_settings or {}) if self.instance else {}
        merged.update(value)
        return merged
