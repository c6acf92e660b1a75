from django.urls import path
from . import views

app_name = 'rides'

urlpatterns = [
    # Passenger APIs
    path('request/', views.request_ride, name='request-ride'),
    path('<int:ride_id>/offers/<int:offer_id>/accept/', views.accept_ride_offer, name='accept-offer'),
    path('<int:ride_id>/rate/', views.rate, name='rate-ride'),

    # Driver APIs
    path('<int:ride_id>/offers/', views.make_offer, name='make-offer'),
    path('offers/<int:offer_id>/withdraw/', views.withdraw, name='withdraw-offer'),

    # Shared
    path('<int:ride_id>/transition/', views.change_status, name='transition-ride'),
    path('<int:ride_id>/cancel/', views.cancel, name='cancel-ride'),
    path('<int:ride_id>/history/', views.history, name='ride-history'),
    path('feed/<str:category>/', views.feed, name='ride-feed'),
]
