# backend/wsgi.py
from bagledger import create_app

app = create_app()
