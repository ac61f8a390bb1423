from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def make_engine(database_url: str, echo: bool = False):
    """
    Create an engine for the vault database.

    SQLite connections are shared across request threads, wait on locks held
    by concurrent writers instead of failing immediately, and enforce foreign
    keys (needed for share rows to cascade with their file).
    """
    connect_args = {}
    if database_url.startswith('sqlite'):
        connect_args['check_same_thread'] = False
        connect_args['timeout'] = 30

    engine = create_engine(database_url, echo=echo, connect_args=connect_args)

    if database_url.startswith('sqlite'):
        @event.listens_for(engine, 'connect')
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute('PRAGMA foreign_keys=ON')
            cursor.close()

    return engine


def create_session_factory(database_url: str, echo: bool = False):
    """
    Create a session factory. Each concurrent worker should take its own
    session from the factory.

    Args:
        database_url: SQLAlchemy database URL
        echo: Whether to echo SQL statements

    Returns:
        sessionmaker bound to a new engine
    """
    engine = make_engine(database_url, echo=echo)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_session(database_url: str, echo: bool = False):
    """
    Create a database session.

    Args:
        database_url: SQLAlchemy database URL
        echo: Whether to echo SQL statements

    Returns:
        Database session
    """
    Session = create_session_factory(database_url, echo=echo)
    return Session()


def init_db(database_url: str, echo: bool = False):
    """
    Initialize database tables.

    Args:
        database_url: SQLAlchemy database URL
        echo: Whether to echo SQL statements
    """
    engine = make_engine(database_url, echo=echo)
    Base.metadata.create_all(bind=engine)
    engine.dispose()
