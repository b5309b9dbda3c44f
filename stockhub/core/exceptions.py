"""
API exceptions shared by all apps, and the REST framework exception handler
that renders them.
"""
import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger('stockhub.core')


class BranchSelectionRequired(APIException):
    """A multi-branch manager has to pick a branch context first"""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Select a branch before loading branch data'
    default_code = 'branch_selection_required'

    def __init__(self, branches=None, detail=None):
        super().__init__(detail=detail)
        self.branches = branches or []


class BranchOutOfScope(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'Branch is outside your area'
    default_code = 'branch_out_of_scope'


def api_exception_handler(exc, context):
    """Default DRF handling plus the branch-selection payload"""
    if isinstance(exc, BranchSelectionRequired):
        logger.info(f"Branch selection required for {context['request'].user}")
        return Response({
            'error': str(exc.detail),
            'code': exc.default_code,
            'branches': exc.branches,
        }, status=exc.status_code)

    response = exception_handler(exc, context)
    if response is not None and isinstance(exc, BranchOutOfScope):
        response.data = {'error': str(exc.detail), 'code': exc.default_code}
    return response
