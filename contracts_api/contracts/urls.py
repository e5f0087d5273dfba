from django.urls import path

from . import views

urlpatterns = [
    path('', views.ContractListCreateView.as_view(), name='contract-list'),
    path('<int:contract_id>/', views.ContractDetailView.as_view(), name='contract-detail'),
    path('<int:contract_id>/sign/', views.ContractSignView.as_view(), name='contract-sign'),
    path('<int:contract_id>/cancel/', views.ContractCancelView.as_view(), name='contract-cancel'),
    path('<int:contract_id>/dispute/', views.ContractDisputeView.as_view(), name='contract-dispute'),
    path('<int:contract_id>/pause/', views.ContractPauseView.as_view(), name='contract-pause'),
    path('<int:contract_id>/resume/', views.ContractResumeView.as_view(), name='contract-resume'),

    path('<int:contract_id>/milestones/<int:milestone_id>/start/', views.MilestoneStartView.as_view(), name='milestone-start'),
    path('<int:contract_id>/milestones/<int:milestone_id>/submit/', views.MilestoneSubmitView.as_view(), name='milestone-submit'),
    path('<int:contract_id>/milestones/<int:milestone_id>/approve/', views.MilestoneApproveView.as_view(), name='milestone-approve'),
    path('<int:contract_id>/milestones/<int:milestone_id>/reject/', views.MilestoneRejectView.as_view(), name='milestone-reject'),

    path('<int:contract_id>/amendments/', views.AmendmentListCreateView.as_view(), name='amendment-list'),
    path('<int:contract_id>/amendments/<int:amendment_id>/respond/', views.AmendmentRespondView.as_view(), name='amendment-respond'),
]
