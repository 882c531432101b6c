from django.urls import path
from . import views


app_name = 'leads'

urlpatterns = [
    path('web-leads/', views.web_lead_create, name='web_lead_create'),
    path('leads/<int:pk>/convert/', views.lead_convert, name='lead_convert'),
    path('leads/<int:pk>/assign/', views.lead_assign, name='lead_assign'),
]
