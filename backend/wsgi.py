# backend/wsgi.py
from erpcore import create_app

app = create_app()
