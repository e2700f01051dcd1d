# backend/wsgi.py
from storecore import create_app

app = create_app()
