"""Flask extension singletons, bound to the app in `create_app`."""

from __future__ import annotations

from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import MetaData

# Stable constraint names so Alembic autogenerate diffs stay clean on SQLite and Postgres.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

db: SQLAlchemy = SQLAlchemy(metadata=MetaData(naming_convention=NAMING_CONVENTION))
migrate: Migrate = Migrate(directory="migrations", render_as_batch=True)
jwt: JWTManager = JWTManager()
cors: CORS = CORS()
# Uploads and vision batches are throttled per client address.
limiter: Limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
