from django.apps import AppConfig


class MirrorappConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'Mirrorapp'
