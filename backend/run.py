from perfect_pitch import create_app, socketio
from perfect_pitch.services.games.server import get_game_server

app = create_app()

if __name__ == '__main__':
    # Use SocketIO server to enable websockets in dev
    try:
        socketio.run(app, debug=True)
    finally:
        get_game_server(app).stop()
