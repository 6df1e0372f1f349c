from django.urls import path

from . import views

app_name = 'shipsync'

urlpatterns = [
    path('cron/ship-sync/', views.trigger_sync, name='trigger-sync'),
    path('ships/', views.ship_list, name='ship-list'),
    path('ships/sync-status/', views.sync_status, name='sync-status'),
    path('ships/manufacturers/', views.manufacturers, name='manufacturers'),
    path('ships/batch/', views.ship_batch, name='ship-batch'),
    path('ships/<str:id_or_slug>/', views.ship_detail, name='ship-detail'),
]
