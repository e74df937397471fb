from rest_framework import status as http
from rest_framework.response import Response


def ok(data=None, status=http.HTTP_200_OK, **extra):
    payload = {"success": True, "data": data}
    payload.update(extra)
    return Response(payload, status=status)


def error_response(code, message, status=http.HTTP_400_BAD_REQUEST, details=None):
    error = {"code": code, "message": message}
    if details:
        error["details"] = details
    return Response({"success": False, "error": error}, status=status)
