# wordgame/urls.py

from django.urls import path
from . import views

urlpatterns = [
    path('', views.dashboard, name='dashboard'),
    path('player/', views.set_player_name, name='set_player_name'),
    path('settings/', views.game_settings, name='game_settings'),
    path('leaderboard/', views.leaderboard, name='leaderboard'),

    # Игра
    path('play/', views.start_game, name='start_game'),
    path('play/guess/', views.submit_guess, name='submit_guess'),
]
