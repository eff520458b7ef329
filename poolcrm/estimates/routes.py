# poolcrm/estimates/routes.py

from flask import Blueprint, request

from poolcrm.auth import current_principal
from poolcrm.estimates import actions
from poolcrm.results import envelope_response

bp = Blueprint('estimates', __name__)


def _json():
    return request.get_json(silent=True) or {}


@bp.route('/', methods=['GET'])
def list_estimates():
    payload = {k: v for k, v in request.args.items() if v != ''}
    statuses = request.args.getlist('status')
    if len(statuses) > 1:
        payload['status'] = statuses
    return envelope_response(actions.list_estimates(current_principal(), payload))


@bp.route('/', methods=['POST'])
def create_estimate():
    result = actions.create_estimate(current_principal(), _json())
    return envelope_response(result, success_status=201)


@bp.route('/number/<estimate_number>', methods=['GET'])
def get_by_number(estimate_number):
    payload = {'estimate_number': estimate_number}
    return envelope_response(actions.get_estimate_by_number(current_principal(), payload))


@bp.route('/<estimate_id>', methods=['GET'])
def get_estimate(estimate_id):
    return envelope_response(actions.get_estimate(current_principal(), {'id': estimate_id}))


@bp.route('/<estimate_id>', methods=['PATCH'])
def update_estimate(estimate_id):
    payload = dict(_json(), id=estimate_id)
    return envelope_response(actions.update_estimate(current_principal(), payload))


@bp.route('/<estimate_id>/status', methods=['POST'])
def update_status(estimate_id):
    payload = dict(_json(), id=estimate_id)
    return envelope_response(actions.update_estimate_status(current_principal(), payload))


@bp.route('/<estimate_id>/duplicate', methods=['POST'])
def duplicate_estimate(estimate_id):
    result = actions.duplicate_estimate(current_principal(), {'id': estimate_id})
    return envelope_response(result, success_status=201)


@bp.route('/<estimate_id>', methods=['DELETE'])
def delete_estimate(estimate_id):
    return envelope_response(actions.delete_estimate(current_principal(), {'id': estimate_id}))


@bp.route('/<estimate_id>/items', methods=['POST'])
def add_item(estimate_id):
    payload = dict(_json(), estimate_id=estimate_id)
    return envelope_response(actions.add_line_item(current_principal(), payload))


@bp.route('/<estimate_id>/items/<item_id>', methods=['PATCH'])
def edit_item(estimate_id, item_id):
    payload = dict(_json(), estimate_id=estimate_id, id=item_id)
    return envelope_response(actions.edit_line_item(current_principal(), payload))


@bp.route('/<estimate_id>/items/<item_id>', methods=['DELETE'])
def remove_item(estimate_id, item_id):
    payload = dict(_json(), estimate_id=estimate_id, id=item_id)
    return envelope_response(actions.remove_line_item(current_principal(), payload))
