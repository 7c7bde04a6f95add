from rest_framework.decorators import api_view
from rest_framework.response import Response

from ..serializers.records import RecordCreateSerializer, RecordListQuerySerializer, RecordUpdateSerializer
from ..services import records


@api_view(['GET', 'POST'])
def record_list(request):
    if request.method == 'POST':
        s = RecordCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        record = records.create_record(request.user, s.validated_data)
        return Response({'ok': True, 'record': records.format_record(record)}, status=201)

    q = RecordListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, pagination = records.list_records(request.user, **q.validated_data)
    return Response({'ok': True, 'records': items, 'pagination': pagination})


@api_view(['GET', 'PATCH', 'DELETE'])
def record_detail(request, pk: int):
    if request.method == 'DELETE':
        records.delete_record(request.user, pk)
        return Response({'ok': True})
    if request.method == 'PATCH':
        s = RecordUpdateSerializer(data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        record = records.update_record(request.user, pk, s.validated_data)
    else:
        record = records.get_record(request.user, pk)
    return Response({'ok': True, 'record': records.format_record(record)})
