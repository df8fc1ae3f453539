import os
import sys
from logging.config import fileConfig

from alembic import context

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
sys.path.append(PROJECT_ROOT)

from app import create_app  # noqa: E402
from extensions import db  # noqa: E402
import clinic_database  # noqa: E402,F401

fileConfig(os.path.join(PROJECT_ROOT, 'alembic.ini'), disable_existing_loggers=False)

app = create_app(os.environ.get('FLASK_ENV'))


def _configure(**kwargs):
    # SQLite cannot ALTER most constraints in place; batch mode copies the table
    url = app.config['SQLALCHEMY_DATABASE_URI']
    context.configure(
        target_metadata=db.metadata,
        compare_type=True,
        render_as_batch=url.startswith('sqlite'),
        **kwargs
    )
    with context.begin_transaction():
        context.run_migrations()


with app.app_context():
    if context.is_offline_mode():
        _configure(url=app.config['SQLALCHEMY_DATABASE_URI'], literal_binds=True,
                   dialect_opts={"paramstyle": "named"})
    else:
        with db.engine.connect() as connection:
            _configure(connection=connection)
