import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.shortcuts import get_object_or_404
from django.db import IntegrityError
from django.db.models import ProtectedError
from django.core.cache import cache

from stockhub.core.model_cache import branch_scope_key, get_branch_list_cache_key, BRANCH_LIST_CACHE_TTL
from stockhub.core.roles import is_admin, is_manager, effective_role
from stockhub.core.scoping import selectable_branches, branch_in_scope
from stockhub.core.utils import create_activity_log
from .models import Region, District, Branch
from .serializers import RegionSerializer, DistrictSerializer, BranchSerializer, BranchSettingsSerializer

logger = logging.getLogger('stockhub.locations')

ADMIN_ONLY = {'error': 'Only administrators can manage the organization hierarchy'}


def _visible_regions(user):
    if is_admin(user):
        return Region.objects.all()
    return Region.objects.filter(branches__in=selectable_branches(user)).distinct()


def _visible_districts(user):
    if is_admin(user):
        return District.objects.select_related('region')
    return District.objects.filter(branches__in=selectable_branches(user)).select_related('region').distinct()


def _save(serializer, label, username):
    """Save a hierarchy serializer, mapping integrity errors to a 400"""
    try:
        obj = serializer.save()
    except IntegrityError as e:
        logger.error(f"IntegrityError saving {label}: {str(e)}", exc_info=True)
        return None, Response({'error': f'A {label} with this name already exists'}, status=status.HTTP_400_BAD_REQUEST)
    logger.info(f"{label.capitalize()} '{obj.name}' saved by {username}")
    return obj, None


def _delete(obj, label, username):
    try:
        obj.delete()
    except ProtectedError:
        logger.warning(f"User {username} tried to delete {label} {obj.id} that still has branches")
        return Response({'error': f'This {label} still has branches attached'}, status=status.HTTP_400_BAD_REQUEST)
    logger.info(f"{label.capitalize()} {obj.id} deleted by {username}")
    return Response(status=status.HTTP_204_NO_CONTENT)


# Region views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def region_list_create(request):
    """List visible regions or create a new one (create requires admin)"""
    try:
        if request.method == 'GET':
            regions = _visible_regions(request.user).select_related('regional_manager').order_by('name')
            return Response(RegionSerializer(regions, many=True).data)

        if not is_admin(request.user):
            logger.warning(f"User {request.user.username} attempted to create a region without admin privileges")
            return Response(ADMIN_ONLY, status=status.HTTP_403_FORBIDDEN)

        serializer = RegionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        region, error = _save(serializer, 'region', request.user.username)
        if error:
            return error
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    except Exception as e:
        logger.error(f"Error in region_list_create: {str(e)}", exc_info=True)
        return Response({'error': 'An error occurred while processing regions'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def region_detail(request, pk):
    region = get_object_or_404(_visible_regions(request.user), pk=pk)

    if request.method == 'GET':
        return Response(RegionSerializer(region).data)

    if not is_admin(request.user):
        return Response(ADMIN_ONLY, status=status.HTTP_403_FORBIDDEN)

    if request.method == 'DELETE':
        return _delete(region, 'region', request.user.username)

    serializer = RegionSerializer(region, data=request.data, partial=request.method == 'PATCH')
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    region, error = _save(serializer, 'region', request.user.username)
    if error:
        return error
    return Response(serializer.data)


# District views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def district_list_create(request):
    """List visible districts (optionally ?region=) or create one (admin)"""
    try:
        if request.method == 'GET':
            districts = _visible_districts(request.user)
            region_id = request.query_params.get('region')
            if region_id:
                districts = districts.filter(region_id=region_id)
            return Response(DistrictSerializer(districts.order_by('name'), many=True).data)

        if not is_admin(request.user):
            logger.warning(f"User {request.user.username} attempted to create a district without admin privileges")
            return Response(ADMIN_ONLY, status=status.HTTP_403_FORBIDDEN)

        serializer = DistrictSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        district, error = _save(serializer, 'district', request.user.username)
        if error:
            return error
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    except Exception as e:
        logger.error(f"Error in district_list_create: {str(e)}", exc_info=True)
        return Response({'error': 'An error occurred while processing districts'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def district_detail(request, pk):
    district = get_object_or_404(_visible_districts(request.user), pk=pk)

    if request.method == 'GET':
        return Response(DistrictSerializer(district).data)

    if not is_admin(request.user):
        return Response(ADMIN_ONLY, status=status.HTTP_403_FORBIDDEN)

    if request.method == 'DELETE':
        return _delete(district, 'district', request.user.username)

    serializer = DistrictSerializer(district, data=request.data, partial=request.method == 'PATCH')
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    district, error = _save(serializer, 'district', request.user.username)
    if error:
        return error
    return Response(serializer.data)


# Branch views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def branch_list_create(request):
    """List branches in the user's scope or create a new branch (create requires admin)"""
    try:
        if request.method == 'GET':
            logger.info(f"User {request.user.username} requested branch list")

            scope_key = branch_scope_key(request.user)
            cache_key = get_branch_list_cache_key(scope_key)
            cached_data = cache.get(cache_key)
            if cached_data is not None:
                logger.debug(f"Cache hit for branch list (scope: {scope_key})")
                return Response(cached_data)

            branches = selectable_branches(request.user).select_related('region', 'district').order_by('name')
            response_data = BranchSerializer(branches, many=True).data
            cache.set(cache_key, response_data, BRANCH_LIST_CACHE_TTL)
            logger.debug(f"Cached branch list (scope: {scope_key}), returning {len(response_data)} branches")
            return Response(response_data)

        if not is_admin(request.user):
            logger.warning(f"User {request.user.username} attempted to create branch without admin privileges")
            return Response(ADMIN_ONLY, status=status.HTTP_403_FORBIDDEN)

        logger.info(f"User {request.user.username} creating branch with data: {request.data}")
        serializer = BranchSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        branch, error = _save(serializer, 'branch', request.user.username)
        if error:
            return error
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    except Exception as e:
        logger.error(f"Error in branch_list_create: {str(e)}", exc_info=True)
        return Response({'error': 'An error occurred while processing branches'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def branch_detail(request, pk):
    branch = get_object_or_404(selectable_branches(request.user).select_related('region', 'district'), pk=pk)

    if request.method == 'GET':
        return Response(BranchSerializer(branch).data)

    if not is_admin(request.user):
        return Response(ADMIN_ONLY, status=status.HTTP_403_FORBIDDEN)

    if request.method == 'DELETE':
        try:
            branch.delete()
        except ProtectedError:
            return Response({'error': 'This branch still has stock or events attached'}, status=status.HTTP_400_BAD_REQUEST)
        logger.info(f"Branch {pk} deleted by {request.user.username}")
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = BranchSerializer(branch, data=request.data, partial=request.method == 'PATCH')
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    branch, error = _save(serializer, 'branch', request.user.username)
    if error:
        return error
    return Response(serializer.data)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def branch_settings(request, pk):
    """Read or change a branch's notification toggles and alert frequency"""
    if not branch_in_scope(request.user, pk):
        return Response({'error': 'Branch not found'}, status=status.HTTP_404_NOT_FOUND)
    branch = get_object_or_404(Branch, pk=pk)

    if request.method == 'GET':
        return Response(BranchSettingsSerializer(branch).data)

    if not is_manager(request.user) and not is_admin(request.user):
        logger.warning(f"User {request.user.username} ({effective_role(request.user)}) tried to change settings of branch {pk}")
        return Response({'error': 'Only managers can change branch settings'}, status=status.HTTP_403_FORBIDDEN)

    serializer = BranchSettingsSerializer(branch, data=request.data, partial=True)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    serializer.save()
    create_activity_log(
        request=request,
        action='branch_settings_updated',
        details={'branch': branch.name, 'changes': dict(serializer.validated_data)},
        branch_id=branch.id,
    )
    logger.info(f"Settings of branch '{branch.name}' updated by {request.user.username}")
    return Response(serializer.data)
