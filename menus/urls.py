"""
URL routing for menu API endpoints.
"""
from django.urls import path
from . import views

app_name = 'menus'

urlpatterns = [
    path('menus/', views.MenuListCreateView.as_view(), name='menu-list'),
    path('menus/feasible/', views.FeasibleMenuListView.as_view(), name='menu-feasible'),
    path('menus/<int:pk>/', views.MenuDetailView.as_view(), name='menu-detail'),
    path('menus/<int:pk>/ingredients/', views.MenuIngredientView.as_view(), name='menu-ingredients'),
    path('menus/<int:pk>/confirm/', views.MenuConfirmView.as_view(), name='menu-confirm'),
    path('menus/<int:pk>/cancel/', views.MenuCancelView.as_view(), name='menu-cancel'),
    path('menus/<int:pk>/prepare/', views.MenuPrepareView.as_view(), name='menu-prepare'),
]
