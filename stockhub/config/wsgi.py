"""
WSGI config for the StockHub project.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'stockhub.config.settings')

application = get_wsgi_application()
