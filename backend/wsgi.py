# backend/wsgi.py
from distro import create_app

app = create_app()
