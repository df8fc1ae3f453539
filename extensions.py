# extensions.py

from flask_sqlalchemy import SQLAlchemy

# Single db object shared by models, repositories and the app factory.
db = SQLAlchemy()
