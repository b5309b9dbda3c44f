from rest_framework import serializers
from django.contrib.auth.password_validation import validate_password
from .models import User, ActivityLog
from .roles import ROLE_CHOICES, STAFF


class UserSerializer(serializers.ModelSerializer):
    branch_name = serializers.CharField(source='branch.name', read_only=True, default=None)
    branch_context_name = serializers.CharField(source='branch_context.name', read_only=True, default=None)

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'name', 'phone', 'photo', 'position', 'role',
                  'branch', 'branch_name', 'branch_context', 'branch_context_name',
                  'region', 'district', 'notification_settings', 'last_access', 'access_count',
                  'is_active', 'created_at', 'updated_at']
        read_only_fields = ['photo', 'last_access', 'access_count', 'created_at', 'updated_at']


class UserCreateSerializer(serializers.ModelSerializer):
    """Self sign-up; new accounts always start as staff"""
    password = serializers.CharField(write_only=True, validators=[validate_password])
    password_confirm = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ['username', 'email', 'password', 'password_confirm', 'name', 'phone']
        extra_kwargs = {'email': {'required': True}}

    def validate(self, attrs):
        if attrs['password'] != attrs['password_confirm']:
            raise serializers.ValidationError({"password": "Passwords don't match"})
        return attrs

    def create(self, validated_data):
        validated_data.pop('password_confirm')
        password = validated_data.pop('password')
        user = User.objects.create(**validated_data, role=STAFF, is_active=True)
        user.set_password(password)
        user.save()
        return user


class ProfileUpdateSerializer(serializers.ModelSerializer):
    """Fields a user may change on their own profile"""

    class Meta:
        model = User
        fields = ['name', 'email', 'phone', 'position', 'notification_settings']

    def validate_notification_settings(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError('Expected an object of channel toggles')
        return value


class ProfilePhotoSerializer(serializers.ModelSerializer):
    photo = serializers.ImageField(required=True)

    class Meta:
        model = User
        fields = ['photo']


class StaffCreateSerializer(serializers.ModelSerializer):
    """Account creation by a manager or admin"""
    password = serializers.CharField(write_only=True, validators=[validate_password])
    role = serializers.ChoiceField(choices=ROLE_CHOICES, default=STAFF)

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'password', 'name', 'phone', 'position', 'role',
                  'branch', 'region', 'district']

    def create(self, validated_data):
        password = validated_data.pop('password')
        user = User.objects.create(**validated_data, is_active=True)
        user.set_password(password)
        user.save()
        return user


class StaffUpdateSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, required=False, validators=[validate_password])

    class Meta:
        model = User
        fields = ['email', 'password', 'name', 'phone', 'position', 'role',
                  'branch', 'region', 'district', 'is_active']

    def update(self, instance, validated_data):
        password = validated_data.pop('password', None)
        moved = any(
            field in validated_data and validated_data[field] != getattr(instance, field)
            for field in ('branch', 'role', 'region', 'district')
        )
        if moved:
            validated_data['branch_context'] = None
        instance = super().update(instance, validated_data)
        if password:
            instance.set_password(password)
            instance.save(update_fields=['password'])
        return instance


class BranchContextSerializer(serializers.Serializer):
    branch = serializers.IntegerField(allow_null=True)


class ActivityLogSerializer(serializers.ModelSerializer):
    user_name = serializers.SerializerMethodField()

    class Meta:
        model = ActivityLog
        fields = ['id', 'user', 'user_name', 'branch', 'action', 'details', 'ip_address', 'created_at']

    def get_user_name(self, obj):
        return obj.user.display_name if obj.user else 'System'
