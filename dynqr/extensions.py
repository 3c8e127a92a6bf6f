# dynqr/extensions.py

from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from sqlalchemy import event
import redis

db = SQLAlchemy()
cors = CORS()
redis_client = None


def init_redis(app):
    """Initialize Redis using REDIS_URL from config."""
    global redis_client

    url = app.config.get("REDIS_URL")

    if not url:
        app.logger.info("No REDIS_URL configured, redirects are served from the database.")
        redis_client = None
        return

    try:
        client = redis.Redis.from_url(url, decode_responses=True)
        client.ping()
        redis_client = client
        app.logger.info("Redis initialized successfully.")
    except redis.RedisError as exc:
        redis_client = None
        app.logger.warning(f"Redis initialization failed: {exc}")


def configure_sqlite(engine):
    """Make SQLite honour foreign keys, SAVEPOINTs and writer serialization.

    pysqlite opens transactions lazily on its own; emitting BEGIN IMMEDIATE
    ourselves takes the write lock up front so concurrent conditional updates
    queue on the busy timeout instead of failing on lock upgrade.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        # Redirect lookups mark their connection read_only and take no write lock
        if conn.get_execution_options().get("read_only"):
            conn.exec_driver_sql("BEGIN")
        else:
            conn.exec_driver_sql("BEGIN IMMEDIATE")
