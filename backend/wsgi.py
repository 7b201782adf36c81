# backend/wsgi.py
# Process entry point: flask --app wsgi run / gunicorn wsgi:app
from procure import create_app
from procure.bootstrap import initialize

app = create_app()
initialize(app)
