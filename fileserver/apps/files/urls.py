"""URL routes for file collections."""

from django.conf import settings
from django.urls import path

from fileserver.apps.files.views import UploadView, download_view

app_name = 'files'

_route = settings.FILES_DOWNLOAD_ROUTE.strip('/')

urlpatterns = [
    path(
        f'{_route}/<str:collection_name>/__upload',
        UploadView.as_view(),
        name='upload',
    ),
    path(
        f'{_route}/<str:collection_name>/<str:file_id>/<str:version>/<str:name>',
        download_view,
        name='download',
    ),
]
