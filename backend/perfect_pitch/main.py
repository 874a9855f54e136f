from flask import Blueprint, current_app, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from sqlalchemy import func
from .models import db, User

main = Blueprint('main', __name__)

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 4


def _credentials():
    data = request.get_json(silent=True) or {}
    return (data.get('username') or '').strip(), data.get('password') or ''


def _find_user(username):
    return User.query.filter(func.lower(User.username) == username.lower()).first()


@main.route('/register', methods=['POST', 'OPTIONS'])
def register():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    username, password = _credentials()
    if not username or not password:
        return jsonify({"success": False, "error": "Username and password required"}), 400
    if len(username) < MIN_USERNAME_LENGTH:
        return jsonify({"success": False, "error": f"Username must be at least {MIN_USERNAME_LENGTH} characters"}), 400
    if len(password) < MIN_PASSWORD_LENGTH:
        return jsonify({"success": False, "error": f"Password must be at least {MIN_PASSWORD_LENGTH} characters"}), 400
    if _find_user(username):
        return jsonify({"success": False, "error": "Username already exists"}), 400

    new_user = User(username=username, rating=current_app.config.get('INITIAL_RATING', 1000))
    new_user.set_password(password)
    db.session.add(new_user)
    db.session.commit()
    login_user(new_user)
    current_app.logger.info(f"[register] user={new_user.username} id={new_user.id}")
    return jsonify({"success": True, "user": new_user.to_dict()}), 201


@main.route('/login', methods=['POST', 'OPTIONS'])
def login():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    username, password = _credentials()
    if not username or not password:
        return jsonify({"success": False, "error": "Username and password required"}), 400
    user = _find_user(username)
    if user and user.check_password(password):
        login_user(user)
        return jsonify({"success": True, "user": user.to_dict()})
    return jsonify({"success": False, "error": "Invalid username or password"}), 401


@main.route('/check_login', methods=['GET', 'OPTIONS'])
def check_login():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200

    @login_required
    def protected_check():
        return jsonify({"success": True, "user": current_user.to_dict()})

    return protected_check()


@main.route('/logout', methods=['POST', 'OPTIONS'])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})
