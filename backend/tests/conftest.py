import os, sys, pytest
# Ensure backend directory is on path so 'fmc' and 'tests' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from fmc import create_app, get_db
from fmc.models.identity import Base
from fmc.services.notifications import NotificationDispatcher
from fmc.utils.clock import FixedClock
# Import all model modules to ensure tables are registered before create_all
import fmc.models.maintenance_request  # noqa: F401
import fmc.models.approval_code  # noqa: F401
import fmc.models.invite_code  # noqa: F401
import fmc.models.timeline  # noqa: F401


class RecordingNotifier(NotificationDispatcher):
    """Captures notifications (including approval code values) for assertions."""

    def __init__(self):
        self.sent = []

    def notify(self, user_id, event, payload):
        self.sent.append((user_id, event, payload))

    def events_for(self, user_id, event=None):
        return [p for (u, e, p) in self.sent if u == user_id and (event is None or e == event)]

    def last_code_for(self, user_id):
        codes = [p['code'] for p in self.events_for(user_id, 'otp_generated')]
        return codes[-1] if codes else None


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    os.environ['DATABASE_URL'] = 'sqlite+pysqlite:///:memory:'
    app = create_app({
        'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
        'CLOCK': FixedClock(),
        'NOTIFIER': RecordingNotifier(),
    })
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app


@pytest.fixture(autouse=True)
def clean_tables(app_instance):
    yield
    session = get_db()
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.expunge_all()
    app_instance.extensions['fmc.clock'].set_time(FixedClock().now())
    app_instance.extensions['fmc.notifier'].sent.clear()


@pytest.fixture()
def app_context(app_instance):
    with app_instance.app_context():
        yield app_instance


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture()
def clock(app_instance):
    return app_instance.extensions['fmc.clock']


@pytest.fixture()
def notifier(app_instance):
    return app_instance.extensions['fmc.notifier']
