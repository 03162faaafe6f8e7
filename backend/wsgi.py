# backend/wsgi.py
from bakesewa import create_app

app = create_app()
