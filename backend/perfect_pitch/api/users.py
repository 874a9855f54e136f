from flask import Blueprint, jsonify
from perfect_pitch import db
from perfect_pitch.models import User
from perfect_pitch.services.games.rating import rank_for_rating


users = Blueprint('users', __name__)


@users.route('/leaderboard', methods=['GET'])
def get_leaderboard():
    ranked = (
        User.query.filter(User.matches_played > 0)
        .order_by(User.rating.desc(), User.id.asc())
        .all()
    )
    leaderboard = [
        {
            'rank': position,
            'id': user.id,
            'username': user.username,
            'rating': user.rating,
            'title': rank_for_rating(user.rating),
            'matchesPlayed': user.matches_played,
            'matchesWon': user.matches_won,
            'winRate': user.win_rate,
        }
        for position, user in enumerate(ranked, start=1)
    ]
    return jsonify({'success': True, 'leaderboard': leaderboard})


@users.route('/users/<int:user_id>', methods=['GET'])
def get_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        return jsonify({'success': False, 'error': 'User not found'}), 404
    payload = user.to_dict()
    payload['stats'] = user.stats_dict()
    return jsonify({'success': True, 'user': payload})
