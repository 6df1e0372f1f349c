from django.urls import include, path

urlpatterns = [
    path('api/', include('shipsync.urls')),
]
