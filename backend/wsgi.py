# backend/wsgi.py
from scanpos import create_app

app = create_app()
