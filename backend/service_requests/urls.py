from django.urls import path
from . import views

app_name = 'service_requests'

urlpatterns = [
    # Customer APIs
    path('', views.service_requests_root, name='service-requests'),
    path('<int:request_id>/', views.request_detail, name='request-detail'),
    path('<int:request_id>/cancel/', views.cancel_request, name='cancel-request'),
    path('<int:request_id>/review/', views.review_request, name='review-request'),

    # Mechanic actions
    path('<int:request_id>/accept/', views.accept_request, name='accept-request'),
    path('<int:request_id>/status/', views.update_status, name='update-status'),
    path('candidates/', views.find_request_candidates, name='find-candidates'),

    # Shared
    path('<int:request_id>/notes/', views.request_notes, name='request-notes'),
]
