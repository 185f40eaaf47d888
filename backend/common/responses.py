from rest_framework import status as http
from rest_framework.response import Response


def ok(data=None, message=None, status=http.HTTP_200_OK):
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return Response(body, status=status)


def created(data=None, message=None):
    return ok(data=data, message=message, status=http.HTTP_201_CREATED)
