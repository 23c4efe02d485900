"""API views for price quotes."""

from __future__ import annotations

from rest_framework import permissions, status  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from shared.domain.exceptions import InputError

from .domain.engine import default_engine
from .serializers import QuoteRequestSerializer


class QuoteView(APIView):
    """Itemized quote for a cart. Read-only: nothing is persisted."""

    permission_classes = [permissions.AllowAny]

    def post(self, request):  # type: ignore
        serializer = QuoteRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            quote = default_engine().quote(data["selections"], data["date_range"], data["guest_ages"])
        except InputError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(quote.to_dict(), status=status.HTTP_200_OK)
