"""Family tree endpoint."""
from flask import current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from backend.family_tree import build_family_tree, find_root
from models import Person, Relation, db


def family_tree():
    root_name = request.args.get('root') or ''
    try:
        people = [
            {'id': p.id, 'first_name': p.first_name, 'last_name': p.last_name, 'gender': p.gender}
            for p in Person.query.order_by(Person.id.asc()).all()
        ]
        relations = [r.to_dict() for r in Relation.query.all()]
    except SQLAlchemyError as e:
        current_app.logger.error(f"Failed to load family tree data: {e}")
        return jsonify({'error': f'Failed to fetch persons: {e}'}), 500

    root = find_root(people, root_name)
    tree = build_family_tree(people, relations, root['id'] if root else None)
    return jsonify({'tree': tree})


def person_detail(person_id):
    """Person record with its custom events."""
    person = db.session.get(Person, person_id)
    if person is None:
        return jsonify({'error': 'Person not found'}), 404
    payload = person.to_dict()
    payload['custom_events'] = [ev.to_dict() for ev in person.custom_events]
    return jsonify(payload)
