"""
Dashboard endpoint.

Counts are scoped to what the caller may see: the super admin gets
platform-wide numbers and approval queues, a hospital admin their
hospital, doctors and patients their own referrals and records.
"""
from rest_framework.decorators import api_view
from rest_framework.response import Response

from ..services.analytics import dashboard as build_dashboard


@api_view(['GET'])
def dashboard(request):
    return Response({'ok': True, 'dashboard': build_dashboard(request.user)})
