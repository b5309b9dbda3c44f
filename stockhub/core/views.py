import logging
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.decorators import api_view, permission_classes, parser_classes
from rest_framework.parsers import MultiPartParser, FormParser
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError, AuthenticationFailed
from rest_framework_simplejwt.tokens import RefreshToken
from django.contrib.auth import get_user_model
from django.core.exceptions import ObjectDoesNotExist
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone

from .filters import ActivityLogFilter
from .models import ActivityLog
from .roles import can_manage, effective_role, is_admin, is_multi_branch, role_level
from .scoping import (
    branch_choices, branch_in_scope, require_branch, scope_profiles, scope_queryset,
    selectable_branches,
)
from .serializers import (
    UserSerializer, UserCreateSerializer, ProfileUpdateSerializer, ProfilePhotoSerializer,
    StaffCreateSerializer, StaffUpdateSerializer, BranchContextSerializer,
    ActivityLogSerializer,
)
from .utils import create_activity_log

User = get_user_model()

logger = logging.getLogger('stockhub.core')


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        data = super().validate(attrs)
        # Ensure user is active
        if not self.user.is_active:
            raise AuthenticationFailed('User account is disabled.')
        create_activity_log(
            request=self.context.get('request'),
            action='login',
            details={'method': 'password'},
            user=self.user,
        )
        data['user'] = UserSerializer(self.user).data
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        token['role'] = effective_role(user)
        token['branch'] = user.branch_id
        return token


class CustomTokenObtainPairView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    """Custom token refresh serializer that handles deleted users gracefully"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except (ObjectDoesNotExist, User.DoesNotExist):
            # User referenced in token doesn't exist anymore
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    """Custom token refresh view that handles deleted users gracefully"""
    serializer_class = CustomTokenRefreshSerializer


@api_view(['POST'])
@permission_classes([AllowAny])
def register(request):
    """User registration endpoint"""
    serializer = UserCreateSerializer(data=request.data)
    if serializer.is_valid():
        user = serializer.save()
        logger.info(f"New account registered: {user.username}")
        # Generate tokens for the new user
        token = CustomTokenObtainPairSerializer.get_token(user)
        return Response({
            'user': UserSerializer(user).data,
            'access': str(token.access_token),
            'refresh': str(token),
        }, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def logout(request):
    """
    Sign out: log the event, clear the branch context and blacklist the
    refresh token. Only a failure to blacklist a supplied token is reported.
    """
    user = request.user

    create_activity_log(
        request=request,
        action='logout',
        details={'timestamp': timezone.now().isoformat()},
    )

    try:
        if user.branch_context_id is not None:
            User.objects.filter(pk=user.pk).update(branch_context=None)
    except Exception as e:
        logger.warning(f"Failed to clear branch context for {user.username}: {str(e)}")

    refresh = request.data.get('refresh')
    if refresh:
        try:
            RefreshToken(refresh).blacklist()
        except TokenError as e:
            logger.info(f"Logout for {user.username} with unusable refresh token: {str(e)}")

    logger.info(f"User {user.username} signed out")
    return Response({'detail': 'Signed out'})


def _track_access(user):
    """Count one access per user per day"""
    now = timezone.now()
    last = user.last_access
    if last is not None and timezone.localdate(last) == timezone.localdate(now):
        return
    user.last_access = now
    user.access_count = (user.access_count or 0) + 1
    user.save(update_fields=['last_access', 'access_count'])


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Get or update the current user's profile"""
    user = request.user

    if request.method == 'GET':
        try:
            _track_access(user)
        except Exception as e:
            logger.warning(f"Access tracking failed for {user.username}: {str(e)}")

        user_data = UserSerializer(user).data
        role = effective_role(user)
        user_data['effective_role'] = role
        user_data['role_level'] = role_level(role)
        user_data['is_admin'] = is_admin(user)
        user_data['requires_branch_selection'] = is_multi_branch(user) and user.branch_context_id is None
        return Response(user_data)

    serializer = ProfileUpdateSerializer(user, data=request.data, partial=True)
    if serializer.is_valid():
        serializer.save()
        create_activity_log(
            request=request,
            action='profile_updated',
            details={'fields': sorted(serializer.validated_data.keys())},
        )
        logger.info(f"User {user.username} updated profile fields {list(serializer.validated_data.keys())}")
        return Response(UserSerializer(user).data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@parser_classes([MultiPartParser, FormParser])
def user_me_photo(request):
    """Upload a profile photo to the media storage"""
    serializer = ProfilePhotoSerializer(request.user, data=request.data)
    if serializer.is_valid():
        user = serializer.save()
        logger.info(f"User {user.username} uploaded a profile photo")
        return Response({'photo': request.build_absolute_uri(user.photo.url)})
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def branch_options(request):
    """Branches the current user may select as branch context"""
    return Response(branch_choices(request.user))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def set_branch_context(request):
    """Set or clear the branch the user is working against"""
    serializer = BranchContextSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    user = request.user
    branch_id = serializer.validated_data['branch']

    if branch_id is not None and not branch_in_scope(user, branch_id):
        logger.warning(f"User {user.username} attempted to select branch {branch_id} outside their scope")
        return Response({'error': 'Branch is outside your area'}, status=status.HTTP_403_FORBIDDEN)

    previous = user.branch_context_id
    user.branch_context_id = branch_id
    user.save(update_fields=['branch_context'])

    create_activity_log(
        request=request,
        action='branch_context_changed',
        details={'from': previous, 'to': branch_id},
        branch_id=branch_id,
    )
    logger.info(f"User {user.username} switched branch context {previous} -> {branch_id}")
    return Response(UserSerializer(user).data)


# Staff views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def staff_list_create(request):
    """List profiles visible to the current user or create a new account"""
    try:
        actor = request.user
        if request.method == 'GET':
            queryset = scope_profiles(actor, User.objects.select_related('branch'), request=request)
            role_filter = request.query_params.get('role')
            if role_filter:
                queryset = queryset.filter(role=role_filter)
            serializer = UserSerializer(queryset.order_by('name', 'username'), many=True)
            return Response(serializer.data)

        serializer = StaffCreateSerializer(data=request.data)
        if not serializer.is_valid():
            logger.warning(f"Staff creation validation failed: {serializer.errors}")
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        error = _check_staff_write(actor, serializer.validated_data)
        if error:
            return error

        extra = {}
        if not is_admin(actor) and serializer.validated_data.get('branch') is None:
            # Accounts created by branch managers land in the working branch
            branch_id = require_branch(actor)
            if branch_id is not None:
                extra['branch'] = selectable_branches(actor).get(pk=branch_id)

        user = serializer.save(**extra)
        create_activity_log(
            request=request,
            action='user_created',
            details={'user_id': user.id, 'username': user.username, 'role': user.role},
            branch_id=user.branch_id,
        )
        logger.info(f"User {actor.username} created account {user.username} ({user.role})")
        return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)
    except APIException:
        raise
    except Exception as e:
        logger.error(f"Unexpected error in staff_list_create: {str(e)}", exc_info=True)
        return Response({'error': 'An unexpected error occurred'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def staff_detail(request, pk):
    """Retrieve, update or delete an account within the caller's scope"""
    actor = request.user
    target = get_object_or_404(scope_profiles(actor, User.objects.all(), request=request), pk=pk)

    if request.method == 'GET':
        return Response(UserSerializer(target).data)

    if request.method == 'DELETE':
        if not is_admin(actor):
            logger.warning(f"User {actor.username} attempted to delete account {pk} without admin privileges")
            return Response({'error': 'Only administrators can delete accounts'}, status=status.HTTP_403_FORBIDDEN)
        if target.pk == actor.pk:
            return Response({'error': 'You cannot delete your own account'}, status=status.HTTP_400_BAD_REQUEST)
        logger.info(f"User {actor.username} deleting account {target.username}")
        create_activity_log(
            request=request,
            action='user_deleted',
            details={'user_id': target.id, 'username': target.username},
            branch_id=target.branch_id,
        )
        target.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    if not can_manage(effective_role(actor), target.role) or (target.pk == actor.pk and 'role' in request.data):
        logger.warning(f"User {actor.username} attempted to modify account {pk} without privileges")
        return Response({'error': 'You cannot modify this account'}, status=status.HTTP_403_FORBIDDEN)

    serializer = StaffUpdateSerializer(target, data=request.data, partial=True)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    error = _check_staff_write(actor, serializer.validated_data)
    if error:
        return error

    user = serializer.save()
    create_activity_log(
        request=request,
        action='user_updated',
        details={'user_id': user.id, 'fields': sorted(k for k in serializer.validated_data if k != 'password')},
        branch_id=user.branch_id,
    )
    logger.info(f"User {actor.username} updated account {user.username}")
    return Response(UserSerializer(user).data)


def _check_staff_write(actor, data):
    """Role and branch limits for account writes; returns an error response or None"""
    role = data.get('role')
    if role is not None and not can_manage(effective_role(actor), role):
        logger.warning(f"User {actor.username} attempted to assign role {role}")
        return Response({'error': 'You cannot assign a role above your own'}, status=status.HTTP_403_FORBIDDEN)

    if is_admin(actor):
        return None

    branch = data.get('branch')
    if branch is not None and not branch_in_scope(actor, branch.pk):
        logger.warning(f"User {actor.username} attempted to assign branch {branch.pk} outside their scope")
        return Response({'error': 'Branch is outside your area'}, status=status.HTTP_403_FORBIDDEN)

    region = data.get('region')
    if region is not None and not selectable_branches(actor).filter(region=region).exists():
        return Response({'error': 'Region is outside your area'}, status=status.HTTP_403_FORBIDDEN)

    district = data.get('district')
    if district is not None and not selectable_branches(actor).filter(district=district).exists():
        return Response({'error': 'District is outside your area'}, status=status.HTTP_403_FORBIDDEN)
    return None


# ActivityLog views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def activity_log_list(request):
    """List activity logs of the working branch with filtering"""
    queryset = scope_queryset(request.user, ActivityLog.objects.select_related('user'), request=request)
    queryset = ActivityLogFilter(request.query_params, queryset=queryset).qs
    serializer = ActivityLogSerializer(queryset.order_by('-created_at')[:200], many=True)
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def activity_log_detail(request, pk):
    """Retrieve an activity log"""
    queryset = scope_queryset(request.user, ActivityLog.objects.all(), request=request)
    activity_log = get_object_or_404(queryset, pk=pk)
    serializer = ActivityLogSerializer(activity_log)
    return Response(serializer.data)


def not_found(request, exception=None):
    """JSON 404 for unknown routes"""
    return JsonResponse({'error': 'Not found', 'path': request.path}, status=404)
