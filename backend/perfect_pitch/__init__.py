from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config, scheduler=None, store=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from perfect_pitch.main import main
    flask_app.register_blueprint(main, url_prefix='/api')

    from perfect_pitch.api.users import users
    flask_app.register_blueprint(users, url_prefix='/api')

    # One game server (queue + session registry) per app; the timers run as
    # Socket.IO background tasks unless a scheduler is injected
    from perfect_pitch.services.games.scheduler import BackgroundScheduler
    from perfect_pitch.services.games.server import EXTENSION_KEY, GameServer
    from perfect_pitch.services.games.settings import GameSettings
    from perfect_pitch.services.games.store import SqlAlchemyStore
    flask_app.extensions[EXTENSION_KEY] = GameServer(
        GameSettings.from_config(flask_app.config),
        scheduler=scheduler or BackgroundScheduler(socketio),
        store=store or SqlAlchemyStore(flask_app),
    )

    from perfect_pitch.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    # Flask-Login user loader
    from perfect_pitch.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from perfect_pitch.models import User
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            # Seed users
            users = ['testuser1', 'testuser2', 'testuser3']
            for u in users:
                user = User(username=u, rating=flask_app.config.get('INITIAL_RATING', 1000))
                user.set_password('password')
                db.session.add(user)

            db.session.commit()
            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
