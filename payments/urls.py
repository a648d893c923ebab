from django.urls import path
from . import views

app_name = 'payments'

urlpatterns = [
    path('refunds/', views.refund_list, name='refund_list'),
    path('refunds/bulk/', views.bulk_transition, name='bulk_transition'),
    path('refunds/<int:payment_id>/process/', views.start_processing, name='start_processing'),
    path('refunds/<int:payment_id>/complete/', views.complete_refund, name='complete_refund'),
    path('refunds/<int:payment_id>/timeline/', views.refund_timeline, name='refund_timeline'),
]
