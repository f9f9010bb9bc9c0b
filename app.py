from flask import Flask, request
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import DeclarativeBase
import os
from werkzeug.middleware.proxy_fix import ProxyFix
import logging

# Configure logging - use INFO level for production
logging.basicConfig(level=logging.INFO)

class Base(DeclarativeBase):
    pass

# Initialize Flask app
app = Flask(__name__)
app.secret_key = os.environ.get('SESSION_SECRET', 'dev-secret')
app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1) # needed for url_for to generate with https

# Database configuration (save request log)
app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('SQLALCHEMY_DATABASE_URI', 'sqlite:///school_dashboard.db')
app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
if not app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite'):
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
        'pool_pre_ping': True,
        "pool_recycle": 300,
    }

# Spreadsheet backing store
app.config['SPREADSHEET_ID'] = os.environ.get('SPREADSHEET_ID', '')
app.config['SHEET_WRITE_URL'] = os.environ.get('SHEET_WRITE_URL', '')
app.config['SHEET_TIMEOUT'] = float(os.environ.get('SHEET_TIMEOUT', '10'))

# Built-in account that does not live in the spreadsheet
app.config['SUPERADMIN_USERNAME'] = os.environ.get('SUPERADMIN_USERNAME', 'admin')
app.config['SUPERADMIN_PASSWORD'] = os.environ.get('SUPERADMIN_PASSWORD', 'password123')

app.config['MAX_CONTENT_LENGTH'] = 16 * 1024 * 1024  # 16MB max upload size

db = SQLAlchemy(app, model_class=Base)

# Add cache-busting headers for all HTML responses
@app.after_request
def add_cache_headers(response):
    if request.endpoint and response.content_type.startswith('text/html'):
        response.headers['Cache-Control'] = 'no-cache, no-store, must-revalidate'
        response.headers['Pragma'] = 'no-cache'
        response.headers['Expires'] = '0'
    return response

# Flask-Login setup
from flask_login import LoginManager
from flask_wtf.csrf import CSRFProtect
from datetime import timedelta

# Configure session duration
app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(hours=24)

login_manager = LoginManager()
login_manager.init_app(app)
login_manager.login_view = 'login'
login_manager.login_message = 'Please log in to access this page.'
login_manager.session_protection = 'strong'

# CSRF Protection
csrf = CSRFProtect(app)

@login_manager.user_loader
def load_user(username):
    import auth
    import data_store
    return auth.load_session_user(data_store.get_state().users, username)

# Create tables at import time so it works under Gunicorn as well
with app.app_context():
    import models  # noqa: F401

    db.create_all()
    logging.info("Save request table ready")
