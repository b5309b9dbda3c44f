from rest_framework import serializers
from .models import Item, Stock, StockMovement
from .stock_status import classify_stock


class ItemSerializer(serializers.ModelSerializer):
    branch_name = serializers.CharField(source='branch.name', read_only=True)
    created_by_name = serializers.CharField(source='created_by.display_name', read_only=True, default=None)
    current_quantity = serializers.SerializerMethodField()
    stock_status = serializers.SerializerMethodField()
    initial_quantity = serializers.IntegerField(write_only=True, required=False, min_value=0, default=0)

    class Meta:
        model = Item
        fields = ['id', 'branch', 'branch_name', 'name', 'category', 'description', 'unit',
                  'threshold_level', 'current_quantity', 'stock_status', 'initial_quantity',
                  'created_by', 'created_by_name', 'created_at', 'updated_at']
        read_only_fields = ['branch', 'created_by', 'created_at', 'updated_at']

    def _quantity(self, obj):
        stock = getattr(obj, 'stock', None)
        return stock.current_quantity if stock else 0

    def get_current_quantity(self, obj):
        return self._quantity(obj)

    def get_stock_status(self, obj):
        return classify_stock(self._quantity(obj), obj.threshold_level)

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError('Name is required')
        return value

    def validate_category(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError('Category is required')
        return value


class ItemUpdateSerializer(ItemSerializer):
    """Item edits; quantity only changes through stock movements"""
    initial_quantity = None

    class Meta(ItemSerializer.Meta):
        fields = [f for f in ItemSerializer.Meta.fields if f != 'initial_quantity']


class StockSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source='item.name', read_only=True)
    category = serializers.CharField(source='item.category', read_only=True)
    unit = serializers.CharField(source='item.unit', read_only=True)
    branch = serializers.IntegerField(source='item.branch_id', read_only=True)
    threshold_level = serializers.IntegerField(source='item.threshold_level', read_only=True)
    status = serializers.SerializerMethodField()
    updated_by_name = serializers.CharField(source='updated_by.display_name', read_only=True, default=None)

    class Meta:
        model = Stock
        fields = ['id', 'item', 'item_name', 'category', 'unit', 'branch', 'current_quantity',
                  'threshold_level', 'status', 'updated_by', 'updated_by_name', 'updated_at']

    def get_status(self, obj):
        return classify_stock(obj.current_quantity, obj.item.threshold_level)


class StockMovementSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source='item.name', read_only=True)
    updated_by_name = serializers.CharField(source='updated_by.display_name', read_only=True, default=None)

    class Meta:
        model = StockMovement
        fields = ['id', 'item', 'item_name', 'movement_type', 'quantity', 'reason',
                  'updated_by', 'updated_by_name', 'created_at']


class StockMovementCreateSerializer(serializers.Serializer):
    item = serializers.IntegerField()
    movement_type = serializers.ChoiceField(choices=StockMovement.MOVEMENT_TYPE_CHOICES)
    quantity = serializers.IntegerField(min_value=1)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
