from django.contrib import admin
from .models import Region, District, Branch


@admin.register(Region)
class RegionAdmin(admin.ModelAdmin):
    list_display = ['name', 'regional_manager', 'created_at']
    search_fields = ['name']


@admin.register(District)
class DistrictAdmin(admin.ModelAdmin):
    list_display = ['name', 'region', 'created_at']
    list_filter = ['region']
    search_fields = ['name']


@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ['name', 'location', 'region', 'district', 'alert_frequency']
    list_filter = ['region', 'district', 'alert_frequency']
    search_fields = ['name', 'location']
