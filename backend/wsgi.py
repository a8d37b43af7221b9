# backend/wsgi.py
from lotto_recon import create_app

app = create_app()
