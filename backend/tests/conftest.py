import os, sys, pytest
# Ensure backend directory is on path so 'projectport' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from projectport import create_app, get_db, get_feed
from projectport.models.profile import Base
# Import all model modules to ensure tables are registered before create_all
import projectport.models.shop  # noqa: F401
import projectport.models.job  # noqa: F401
import projectport.models.message  # noqa: F401
import projectport.models.support_ticket  # noqa: F401
import projectport.models.notification  # noqa: F401
import projectport.models.external_job  # noqa: F401
import projectport.models.audit  # noqa: F401

SYSTEM_JOB_API_KEY = 'test-system-key'


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    os.environ['DATABASE_URL'] = 'sqlite+pysqlite:///:memory:'
    app = create_app({'SYSTEM_JOB_API_KEY': SYSTEM_JOB_API_KEY, 'FUNCTIONS_URL': ''})
    # After app and blueprints are registered, ensure all tables exist
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app


@pytest.fixture()
def app_context(app_instance):
    with app_instance.app_context():
        yield app_instance


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture()
def feed(app_instance):
    """The app's change feed, emptied of events left over from earlier tests."""
    f = get_feed()
    f.dispatch()
    f.clear()
    yield f
    for sub in f.subscriptions:
        sub.unsubscribe()
    f.clear()
