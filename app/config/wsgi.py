"""
WSGI config for the escrow API.

Exposes the WSGI callable as a module-level variable named `application`
for gunicorn or any other WSGI server. The ASGI entry point in asgi.py
serves the same application.

https://docs.djangoproject.com/en/5.2/howto/deployment/wsgi/
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
