from django.urls import path
from . import views


app_name = 'core'

urlpatterns = [
    path('health/', views.health, name='health'),
    path('me/', views.me, name='me'),
    path('teams/switch/', views.switch_current_team, name='switch_team'),
]
