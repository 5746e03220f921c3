# backend/wsgi.py
from tubex import create_app

app = create_app()
