# backend/wsgi.py
from stockcheck import create_app

app = create_app()
