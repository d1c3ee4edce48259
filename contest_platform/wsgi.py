# contest_platform/wsgi.py
# WSGI entry point: gunicorn contest_platform.wsgi:app / flask --app contest_platform.wsgi run

from contest_platform import create_app

app = create_app()
